"""Route group exports."""

from . import geocode, health, optimize, routes

__all__ = ["geocode", "health", "optimize", "routes"]
