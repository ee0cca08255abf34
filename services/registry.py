"""
Service Registry - lazy construction of the report services
"""
from typing import Dict, Any, Callable


class ServiceRegistry:
    """
    Holds the app's services by name.
    Factories run on first get(), so source clients are only built
    (and their API keys checked) when a route needs them.
    """

    def __init__(self):
        self._services: Dict[str, Any] = {}
        self._factories: Dict[str, Callable] = {}

    def register(self, name: str, service: Any) -> None:
        """Register a ready service instance (tests use this to inject mocks)."""
        self._services[name] = service

    def register_factory(self, name: str, factory: Callable) -> None:
        self._factories[name] = factory

    def get(self, name: str) -> Any:
        """
        Get a service by name, building it from its factory on first use.

        Raises:
            ValueError: If service is not registered
        """
        if name in self._services:
            return self._services[name]

        if name in self._factories:
            self._services[name] = self._factories[name]()
            return self._services[name]

        raise ValueError(f"Service '{name}' is not registered")

    def list_services(self) -> list:
        return sorted(set(self._services) | set(self._factories))
