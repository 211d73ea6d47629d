"""HTTP API blueprints."""

from .ownership import ownership_api

__all__ = ['ownership_api']
