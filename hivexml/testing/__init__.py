"""In-memory hive fixtures for tests."""

from .fixtures import MemoryHive, MemoryHiveAdapter, encode_multiple_strings, encode_string

__all__ = ['MemoryHive', 'MemoryHiveAdapter', 'encode_string', 'encode_multiple_strings']
