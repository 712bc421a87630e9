"""
Core components for keyadmin: configuration, logging and the API gateway.
"""
