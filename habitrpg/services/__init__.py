"""
Service layer - business logic between the API routes and the database.

Each service takes the Database instance and owns its transaction boundaries.
Use the ServiceContainer to share instances across the application.
"""

from habitrpg.services.container import ServiceContainer, get_container, init_container

__all__ = [
    "ServiceContainer",
    "get_container",
    "init_container",
]
