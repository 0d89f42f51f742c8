"""
Exception classes for the Manifold host bootstrap.

Import them like:
    from bootstrap.exceptions import BootstrapError, ManifestParseError, ...

The loader never lets these escape a Load Request: they are caught at that
boundary and turned into a ``LoadResult`` plus a log line. Only configuration
problems are fatal at startup.
"""

from typing import List, Optional

from core.results import LoadFailureReason


class BootstrapError(RuntimeError):
    """
    Base exception for all bootstrap-related errors.
    """

    def __init__(self, message: str, component_id: Optional[str] = None, phase: Optional[str] = None):
        super().__init__(message)
        self.component_id = component_id
        self.phase = phase

    def __str__(self) -> str:
        base_msg = super().__str__()

        context_parts = []
        if self.phase:
            context_parts.append(f"phase={self.phase}")
        if self.component_id:
            context_parts.append(f"component={self.component_id}")

        if context_parts:
            return f"{base_msg} ({', '.join(context_parts)})"
        return base_msg


class ConfigurationError(BootstrapError):
    """
    Raised when configuration loading or validation fails.

    Includes the fatal chat-client case: enabled without a guild id or token.
    """
    pass


class ManifestProcessingError(BootstrapError):
    """
    Raised when a manifest file cannot be processed.
    """

    def __init__(self, message: str, manifest_path: Optional[str] = None, schema_errors: Optional[List[str]] = None):
        super().__init__(message, phase="manifest_processing")
        self.manifest_path = manifest_path
        self.schema_errors = schema_errors or []

    def __str__(self) -> str:
        base_msg = super().__str__()

        if self.manifest_path:
            base_msg = f"{base_msg} (manifest={self.manifest_path})"

        if self.schema_errors:
            error_list = "\n  - ".join(self.schema_errors)
            return f"{base_msg}\nSchema errors:\n  - {error_list}"

        return base_msg


class ManifestParseError(ManifestProcessingError):
    """
    Raised by the manifest processor. ``reason`` is one of
    ``INVALID_MANIFEST``, ``MISSING_REQUIRED_FIELD`` or ``READ_FAILED``.
    """

    def __init__(self, reason: LoadFailureReason, message: str, manifest_path: Optional[str] = None,
                 schema_errors: Optional[List[str]] = None):
        super().__init__(message, manifest_path=manifest_path, schema_errors=schema_errors)
        self.reason = reason


class ClassificationError(BootstrapError):
    """Raised when a manifest path lies under none of the resource roots."""

    def __init__(self, message: str, manifest_path: Optional[str] = None):
        super().__init__(message, phase="classification")
        self.manifest_path = manifest_path


class DependencyResolutionError(BootstrapError):
    """Raised when a feature unit hard-requires a capability that is not loaded."""

    def __init__(self, message: str, component_id: Optional[str] = None, capability: Optional[str] = None):
        super().__init__(message, component_id=component_id, phase="dependency_gate")
        self.capability = capability


class ActivationError(BootstrapError):
    """
    Raised when a component's entry point cannot be resolved or throws.

    The original exception, if any, is chained as ``__cause__``.
    """

    def __init__(self, message: str, component_id: Optional[str] = None):
        super().__init__(message, component_id=component_id, phase="activation")


class PersistenceError(BootstrapError):
    """Raised by persistence backends. The version table logs these instead of propagating."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message, phase="persistence")
        self.table = table


__all__ = [
    'BootstrapError', 'ConfigurationError', 'ManifestProcessingError', 'ManifestParseError',
    'ClassificationError', 'DependencyResolutionError', 'ActivationError',
    'PersistenceError',
]
