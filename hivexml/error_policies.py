"""
Error handling policies for hivexml.

This module provides a flexible error handling system through the Policy pattern,
allowing callers to define how recoverable errors are handled while a hive is
walked and serialized.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import sys

from .errors import TraversalAborted


# Methods that enumerate entries; an empty list lets the walk continue
_ENUMERATION_METHODS = ('get_children', 'get_values')


def _describe(target: Any) -> Optional[str]:
    """Best-effort location of a node or value for error records."""
    if target is None:
        return None
    handle = getattr(target, 'handle', None)
    name = getattr(target, 'name', None)
    if name is None:
        name = getattr(target, 'key', None)
    if handle is not None:
        return f"{name!r}@{handle}" if name is not None else f"@{handle}"
    return str(target)


def _default_for(method_name: str) -> Any:
    """Return the value that lets the walk continue after a failed method."""
    if method_name in _ENUMERATION_METHODS:
        return []
    return None


class ErrorPolicy(ABC):
    """
    Base class for error handling policies.

    Subclasses implement different strategies for handling errors raised by
    the traversal engine or by the XML serializer's recoverable helpers.
    """

    @abstractmethod
    def handle(self, error: Exception, method_name: str, target: Any) -> Any:
        """
        Handle an error that occurred during a hive operation.

        Args:
            error: The exception that was raised
            method_name: Name of the operation that failed (e.g., 'get_children',
                'node_byte_runs')
            target: The node or value being processed when the error occurred

        Returns:
            A sensible default value that allows processing to continue,
            or re-raises the exception to stop it.
        """
        pass


class FailFastPolicy(ErrorPolicy):
    """
    Policy that immediately re-raises any error, stopping the conversion.

    Useful when data integrity is critical and partial results are not acceptable.
    """

    def handle(self, error: Exception, method_name: str, target: Any) -> Any:
        """Re-raise the error immediately."""
        raise error


class ContinueOnErrorsPolicy(ErrorPolicy):
    """
    Policy that logs errors and continues.

    Errors are collected for later inspection, and sensible defaults
    are returned to allow processing to continue. This is the serializer's
    default: a damaged entry should cost one warning, not the whole document.
    """

    def __init__(self, verbose: bool = True):
        """
        Initialize the policy.

        Args:
            verbose: If True, print warnings to stderr when errors occur
        """
        self.errors: List[Dict[str, Any]] = []
        self.skipped: List[str] = []
        self.verbose = verbose

    def handle(self, error: Exception, method_name: str, target: Any) -> Any:
        """
        Log the error and return a sensible default.

        Returns:
            - Empty list for get_children / get_values
            - None for everything else
        """
        location = _describe(target)

        self.errors.append({
            'location': location,
            'method': method_name,
            'error': error,
            'error_type': type(error).__name__,
            'error_message': str(error)
        })

        if method_name in _ENUMERATION_METHODS and location:
            self.skipped.append(location)

        if self.verbose:
            print(f"WARNING: {method_name} failed for {location or 'unknown'}: {error}, continuing",
                  file=sys.stderr)

        return _default_for(method_name)

    def get_statistics(self) -> dict:
        """
        Get statistics about errors encountered.

        Returns:
            Dictionary with error counts and details
        """
        return {
            'total_errors': len(self.errors),
            'format_errors': sum(1 for e in self.errors if e['error_type'] == 'HiveFormatError'),
            'provenance_errors': sum(1 for e in self.errors
                                     if e['error_type'] in ('ProvenanceError', 'InvalidHandleError')),
            'skipped_entries': len(self.skipped),
            'errors': self.errors
        }


class CollectErrorsPolicy(ErrorPolicy):
    """
    Policy that collects all errors without printing, for batch processing.

    Similar to ContinueOnErrorsPolicy but silent. Useful for embedding
    callers that present errors themselves.
    """

    def __init__(self):
        """Initialize the policy."""
        self.errors: List[Dict[str, Any]] = []

    def handle(self, error: Exception, method_name: str, target: Any) -> Any:
        """Silently collect the error and return a default."""
        self.errors.append({
            'location': _describe(target),
            'method': method_name,
            'error': error,
            'error_type': type(error).__name__,
            'error_message': str(error)
        })
        return _default_for(method_name)


class ThresholdPolicy(ErrorPolicy):
    """
    Policy that tolerates errors up to a threshold, then fails fast.

    Useful when some damage is expected but too much indicates the input
    is not worth converting.
    """

    def __init__(self, max_errors: int = 10, verbose: bool = True):
        """
        Initialize threshold policy.

        Args:
            max_errors: Maximum errors to tolerate before failing
            verbose: If True, print warnings for errors
        """
        self.max_errors = max_errors
        self.error_count = 0
        self.verbose = verbose
        self.errors: List[Exception] = []

    def handle(self, error: Exception, method_name: str, target: Any) -> Any:
        """Handle error if under threshold, otherwise re-raise."""
        self.error_count += 1
        self.errors.append(error)

        if self.error_count > self.max_errors:
            raise TraversalAborted(f"Error threshold exceeded ({self.max_errors} errors)") from error

        if self.verbose:
            print(f"WARNING [{self.error_count}/{self.max_errors}]: {method_name} failed for "
                  f"{_describe(target) or 'unknown'}: {error}",
                  file=sys.stderr)

        return _default_for(method_name)
