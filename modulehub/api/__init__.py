"""API package exports."""

from modulehub.api.middleware import CorrelationIdMiddleware

__all__ = ["CorrelationIdMiddleware"]
