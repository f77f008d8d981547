"""Request handlers."""

from .fixtures import FixtureRoutes

__all__ = [
    "FixtureRoutes",
]
