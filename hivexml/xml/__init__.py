"""XML emission: writer, encoders and the serializing visitor."""

from .writer import DocumentWriter
from .timestamps import filetime_to_8601
from .encoding import encoding_recommendation, safe_print_string_attribute
from .byte_runs import node_byte_runs, value_byte_runs
from .serializer import HiveXMLSerializer, write_mtime

__all__ = [
    'DocumentWriter',
    'filetime_to_8601',
    'encoding_recommendation',
    'safe_print_string_attribute',
    'node_byte_runs',
    'value_byte_runs',
    'HiveXMLSerializer',
    'write_mtime',
]
