"""Configuration system for hivexml.

This module defines the registry value type tags handed over by the
traversal engine, the XML shapes they are serialized as, and the options
that control a single hive-to-XML run.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, List, Union

from .error_policies import ContinueOnErrorsPolicy, ErrorPolicy


class ValueType(IntEnum):
    """Registry value type tags.

    The numeric values are the type ids stored in the hive's value
    descriptors. Ids outside this set are carried around as plain ints
    and serialized as ``unknown``.
    """
    NONE = 0
    STRING = 1
    EXPAND_STRING = 2
    BINARY = 3
    DWORD = 4
    DWORD_BE = 5
    LINK = 6
    MULTIPLE_STRINGS = 7
    RESOURCE_LIST = 8
    FULL_RESOURCE_DESCRIPTION = 9
    RESOURCE_REQUIREMENTS_LIST = 10
    QWORD = 11

    @classmethod
    def coerce(cls, type_id: int) -> Union['ValueType', int]:
        """Map a raw type id to a member, leaving unknown ids as ints.

        Args:
            type_id: Numeric type id read from the hive

        Returns:
            The matching ValueType, or ``type_id`` unchanged
        """
        try:
            return cls(type_id)
        except ValueError:
            return type_id


# Types whose payload is UTF-16 text and may therefore fail to decode
STRING_TYPES = frozenset({
    ValueType.STRING,
    ValueType.EXPAND_STRING,
    ValueType.LINK,
    ValueType.MULTIPLE_STRINGS,
})


class ValueShape(Enum):
    """XML representation pattern selected for a value."""
    STRING = "string"                       # Single decoded string
    MULTIPLE_STRINGS = "string-list"        # <string> children
    STRING_INVALID = "string-invalid"       # Raw bytes of a failed decode
    DWORD = "int32"                         # Signed 32-bit decimal
    QWORD = "int64"                         # Signed 64-bit decimal
    BINARY = "binary"                       # Unconditional base64
    NONE = "none"                           # base64 only when non-empty
    OTHER = "other"                         # Resource kinds and unknown ids


@dataclass
class VisitConfig:
    """Complete configuration for one hive-to-XML conversion.

    ``skip_bad`` is handed to the traversal engine; ``error_policy`` governs
    the recoverable failures of the serializer itself (unprintable input,
    failed provenance queries).
    """

    # Engine options
    debug: bool = False           # Verbose engine open
    skip_bad: bool = False        # Skip malformed entries instead of aborting

    # Serializer error handling
    error_policy: ErrorPolicy = field(default_factory=ContinueOnErrorsPolicy)

    # Output
    encoding: str = "utf-8"

    @classmethod
    def salvage(cls, verbose: bool = True) -> 'VisitConfig':
        """Create config that recovers as much of a damaged hive as possible.

        Args:
            verbose: Print a warning for every skipped entry

        Returns:
            VisitConfig with bad-entry skipping enabled
        """
        return cls(
            skip_bad=True,
            error_policy=ContinueOnErrorsPolicy(verbose=verbose),
        )

    @classmethod
    def from_kwargs(cls, **kwargs: Any) -> 'VisitConfig':
        """Build a config from keyword options, ignoring ``None`` values."""
        config = cls()
        for key, value in kwargs.items():
            if value is None:
                continue
            if not hasattr(config, key):
                raise TypeError(f"Unknown configuration option: {key}")
            setattr(config, key, value)
        return config

    def validate(self) -> List[str]:
        """Validate configuration for consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not isinstance(self.error_policy, ErrorPolicy):
            errors.append("error_policy must be an ErrorPolicy instance")

        try:
            "".encode(self.encoding)
        except LookupError:
            errors.append(f"unknown output encoding: {self.encoding}")

        return errors
