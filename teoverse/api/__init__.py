"""
TeoVerse API Module

FastAPI application, dependencies, middleware and routes.
"""
