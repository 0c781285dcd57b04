"""
Error taxonomy for stagenet.

FormatError
    The record itself cannot be read: unknown layer kind, a schema
    version newer than this build knows, a field missing for an upgrade
    step or after the full chain, or a truncated record file.

ValidationError
    A decoded or user-supplied value fails a type, shape or range
    constraint. Carries the offending field and layer kind.

Both are deterministic data errors; callers should not retry.
"""

from typing import Optional


class StageNetError(Exception):
    """Base class for all stagenet errors."""


class FormatError(StageNetError):

    def __init__(
        self,
        message: str,
        layer_kind: Optional[str] = None,
        schema_version: Optional[int] = None,
        field: Optional[str] = None,
    ):
        self.layer_kind = layer_kind
        self.schema_version = schema_version
        self.field = field

        context = []
        if layer_kind is not None:
            context.append(f"kind={layer_kind}")
        if schema_version is not None:
            context.append(f"version={schema_version}")
        if field is not None:
            context.append(f"field={field}")
        suffix = f" ({', '.join(context)})" if context else ""
        super().__init__(f"{message}{suffix}")


class ValidationError(StageNetError, ValueError):

    def __init__(self, message: str, field: str, layer_kind: Optional[str] = None):
        self.field = field
        self.layer_kind = layer_kind
        where = f"{layer_kind}.{field}" if layer_kind else field
        super().__init__(f"Invalid value for '{where}': {message}")
