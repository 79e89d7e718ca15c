"""
Application utilities: logging setup and JSON error handlers.
"""
