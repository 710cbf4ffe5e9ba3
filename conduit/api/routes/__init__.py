"""API route modules."""

from conduit.api.routes import functions, gateway, health, jobs

__all__ = ["functions", "gateway", "health", "jobs"]
