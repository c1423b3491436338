"""
Domain layer - Core business logic and models.

This module contains the core domain models and the error taxonomy,
isolated from external concerns like databases and frameworks.
"""
