"""Live record service interaction package."""

from .client import ServiceClient
from .executor import RestExecutor

__all__ = ["ServiceClient", "RestExecutor"]
