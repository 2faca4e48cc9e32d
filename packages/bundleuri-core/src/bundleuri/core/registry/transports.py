from __future__ import annotations

from typing import Dict, Type

from bundleuri.core.runtime.settings import Settings
from bundleuri.core.transports.base import Transport


class TransportRegistry:
    """
    Registry + factory for URI transports, keyed by scheme.

    Supports decorator registration:
        @registry.register("http", "https")
        class RemoteHelperTransport: ...

    And factory instantiation bound to the current settings:
        t = registry.create("https", settings=settings)
    """

    def __init__(self) -> None:
        self._items: Dict[str, Type] = {}

    def register(self, *schemes: str):
        def deco(cls):
            for scheme in schemes:
                self._items[scheme.lower()] = cls
            return cls
        return deco

    def __contains__(self, scheme: object) -> bool:
        return isinstance(scheme, str) and scheme.lower() in self._items

    def get(self, scheme: str):
        key = scheme.lower()
        if key not in self._items:
            raise KeyError(f"Unknown transport scheme: {scheme}. Loaded: {self.list()}")
        return self._items[key]

    def list(self) -> list[str]:
        return sorted(self._items.keys())

    def create(self, scheme: str, *, settings: Settings) -> Transport:
        Cls = self.get(scheme)
        return Cls(settings)


# Singleton registry used by core + plugins
REGISTRY = TransportRegistry()


def register_transport(*schemes: str):
    return REGISTRY.register(*schemes)


def get_transport(scheme: str):
    return REGISTRY.get(scheme)


def list_transports() -> list[str]:
    return REGISTRY.list()
