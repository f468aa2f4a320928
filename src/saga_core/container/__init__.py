"""Collaborator resolution."""

from .container import ServiceContainer, ServiceEntry

__all__ = ["ServiceContainer", "ServiceEntry"]
