"""
Per-field validators for layer properties.

Each validator returns a `Checked` result carrying either the canonical
value or the `ValidationError` describing why the value was rejected.
Setters and the decode builders call `.unwrap()` so the error surfaces
at the call site with the field name and layer kind attached.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence, Tuple

import numpy as np

from stagenet.errors import ValidationError
from stagenet.schema.wire import is_numeric, is_real_numeric, to_host_array


@dataclass(frozen=True)
class Checked:
    value: Any = None
    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


def _fail(message: str, field: str, kind: Optional[str]) -> Checked:
    return Checked(error=ValidationError(message, field=field, layer_kind=kind))


def check_layer_name(value: Any, kind: Optional[str] = None) -> Checked:
    if not isinstance(value, str):
        return _fail("layer name must be a string", "name", kind)
    return Checked(value)


def check_bool(value: Any, field: str, kind: Optional[str] = None) -> Checked:
    if isinstance(value, (bool, np.bool_)):
        return Checked(bool(value))
    if isinstance(value, (int, np.integer)) and value in (0, 1):
        return Checked(bool(value))
    return _fail("must be true or false", field, kind)


def check_positive_int(value: Any, field: str, kind: Optional[str] = None) -> Checked:
    if isinstance(value, (bool, np.bool_)):
        return _fail("must be a positive integer", field, kind)
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        value = int(value)
    if not isinstance(value, (int, np.integer)) or value < 1:
        return _fail("must be a positive integer", field, kind)
    return Checked(int(value))


def check_size(value: Any, field: str, kind: Optional[str] = None) -> Checked:
    """Scalar or row vector of up to four positive integers."""
    if isinstance(value, (list, tuple, np.ndarray)):
        dims = list(np.asarray(value).ravel())
        if not 1 <= len(dims) <= 4:
            return _fail("must have between one and four dimensions", field, kind)
        out = []
        for d in dims:
            checked = check_positive_int(d, field, kind)
            if not checked.ok:
                return checked
            out.append(checked.value)
        return Checked(out[0] if len(out) == 1 else tuple(out))
    return check_positive_int(value, field, kind)


def check_optional_positive_int(value: Any, field: str, kind: Optional[str] = None) -> Checked:
    if value is None:
        return Checked(None)
    return check_positive_int(value, field, kind)


def check_factor(value: Any, field: str, kind: Optional[str] = None) -> Checked:
    """Learn-rate and L2 multipliers: finite, real, non-negative."""
    if isinstance(value, (bool, np.bool_)):
        return _fail("must be a finite non-negative number", field, kind)
    try:
        v = float(value)
    except (TypeError, ValueError):
        return _fail("must be a finite non-negative number", field, kind)
    if not math.isfinite(v) or v < 0:
        return _fail("must be a finite non-negative number", field, kind)
    return Checked(v)


def check_probability(value: Any, field: str, kind: Optional[str] = None) -> Checked:
    if isinstance(value, (bool, np.bool_)):
        return _fail("must be a number in [0, 1)", field, kind)
    try:
        v = float(value)
    except (TypeError, ValueError):
        return _fail("must be a number in [0, 1)", field, kind)
    if not math.isfinite(v) or not 0 <= v < 1:
        return _fail("must be a number in [0, 1)", field, kind)
    return Checked(v)


def check_choice(
    value: Any,
    choices: Sequence[str],
    field: str,
    kind: Optional[str] = None,
) -> Checked:
    """Case-insensitive match against a fixed vocabulary."""
    if isinstance(value, str):
        lowered = value.lower()
        for c in choices:
            if c.lower() == lowered:
                return Checked(c)
    return _fail(f"must be one of {', '.join(choices)}", field, kind)


def check_function_reference(value: Any, field: str, kind: Optional[str] = None) -> Checked:
    if isinstance(value, str) and ":" in value:
        module, _, qualname = value.partition(":")
        if module and qualname:
            return Checked(value)
    if callable(value) and hasattr(value, "__module__") and hasattr(value, "__qualname__"):
        return Checked(f"{value.__module__}:{value.__qualname__}")
    return _fail("must be a 'module:qualname' function reference", field, kind)


def check_learnable_value(
    value: Any,
    field: str,
    kind: Optional[str] = None,
    expected_shape: Optional[Tuple[int, ...]] = None,
) -> Checked:
    """
    Learnable tensors: real, numeric, finite and of the expected shape
    when the layer knows it. The checked value is a host numpy array.
    """
    if value is None:
        return Checked(None)
    try:
        arr = to_host_array(value)
    except (TypeError, ValueError, RuntimeError) as exc:
        return _fail(f"cannot be converted to a numeric array ({exc})", field, kind)

    if not is_real_numeric(arr):
        return _fail("must be a real numeric array", field, kind)
    if arr.size and not np.all(np.isfinite(arr)):
        return _fail("must contain only finite values", field, kind)
    if expected_shape is not None and tuple(arr.shape) != tuple(expected_shape):
        return _fail(
            f"expected shape {tuple(expected_shape)}, got {tuple(arr.shape)}",
            field,
            kind,
        )
    return Checked(arr)


def check_statistic(
    value: Any,
    field: str,
    kind: Optional[str],
    allowed_shapes: Iterable[Tuple[int, ...]],
    allow_complex: bool = False,
) -> Checked:
    """
    Normalization statistics: finite numeric arrays stored in single
    precision whose shape is one of `allowed_shapes`.
    """
    if value is None:
        return Checked(None)
    arr = to_host_array(value)

    if not (is_numeric(arr) if allow_complex else is_real_numeric(arr)):
        expected = "numeric" if allow_complex else "real numeric"
        return _fail(f"must be a {expected} array", field, kind)
    if arr.size and not np.all(np.isfinite(arr)):
        return _fail("must contain only finite values", field, kind)

    shapes = [tuple(s) for s in allowed_shapes]
    if tuple(arr.shape) not in shapes:
        return _fail(
            f"shape {tuple(arr.shape)} does not match any of {shapes}",
            field,
            kind,
        )

    dtype = np.complex64 if arr.dtype.kind == "c" else np.float32
    return Checked(arr.astype(dtype))
