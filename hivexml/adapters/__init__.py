"""Concrete traversal engines."""

from .registry import RegistryHiveAdapter

__all__ = ['RegistryHiveAdapter']
