"""Delegated resource API client."""

from .client import DelegatedResourceClient

__all__ = ["DelegatedResourceClient"]
