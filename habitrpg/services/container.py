"""
Service Container - Dependency Injection Container

Simple DI container for managing service instances and their dependencies.
Uses lazy loading to only instantiate services when first accessed.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services are lazy-loaded on first access via properties.
    The database (pool manager) is injected.
    """

    # Infrastructure dependencies (injected)
    db: object  # Database instance

    # Services (lazy-loaded via properties)
    _auth_service: Optional[object] = field(default=None, init=False, repr=False)
    _completion_service: Optional[object] = field(default=None, init=False, repr=False)
    _habit_service: Optional[object] = field(default=None, init=False, repr=False)
    _profile_service: Optional[object] = field(default=None, init=False, repr=False)
    _stats_service: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def auth_service(self):
        """Get AuthService instance (lazy-loaded)"""
        if self._auth_service is None:
            from habitrpg.services.auth_service import AuthService
            self._auth_service = AuthService(self.db)
            logger.debug("AuthService instantiated")
        return self._auth_service

    @property
    def completion_service(self):
        """Get CompletionService instance (lazy-loaded)"""
        if self._completion_service is None:
            from habitrpg.services.completion_service import CompletionService
            self._completion_service = CompletionService(self.db)
            logger.debug("CompletionService instantiated")
        return self._completion_service

    @property
    def habit_service(self):
        """Get HabitService instance (lazy-loaded)"""
        if self._habit_service is None:
            from habitrpg.services.habit_service import HabitService
            self._habit_service = HabitService(self.db, self.completion_service)
            logger.debug("HabitService instantiated")
        return self._habit_service

    @property
    def profile_service(self):
        """Get ProfileService instance (lazy-loaded)"""
        if self._profile_service is None:
            from habitrpg.services.profile_service import ProfileService
            self._profile_service = ProfileService(self.db)
            logger.debug("ProfileService instantiated")
        return self._profile_service

    @property
    def stats_service(self):
        """Get StatsService instance (lazy-loaded)"""
        if self._stats_service is None:
            from habitrpg.services.stats_service import StatsService
            self._stats_service = StatsService(self.db)
            logger.debug("StatsService instantiated")
        return self._stats_service


# Global container instance (initialized at API startup)
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Get the global service container.

    Raises:
        RuntimeError: If container not initialized (call init_container first)
    """
    if _container is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Call init_container() during application startup before using services."
        )
    return _container


def init_container(db: object) -> ServiceContainer:
    """
    Initialize the global service container.

    Should be called once at startup after the connection pool is open.
    """
    global _container

    _container = ServiceContainer(db=db)

    logger.info("Service container initialized")
    return _container
