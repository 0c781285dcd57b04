from typing import Any

import numpy as np


def fmt_size(size: Any) -> str:
    """
    Format a layer size for display.
    5 -> "5", (28, 28, 1) -> "28×28×1", None -> "auto".
    """
    if size is None:
        return "auto"
    if isinstance(size, (list, tuple, np.ndarray)):
        return "×".join(str(int(s)) for s in np.asarray(size).ravel())
    try:
        return str(int(size))
    except (TypeError, ValueError):
        return "N/A"


def fmt_value(value: Any) -> str:
    """
    Compact rendering of a property value.
    Arrays collapse to "shape dtype"; everything else uses repr/str.
    """
    if value is None:
        return "[]"
    if isinstance(value, np.ndarray) or hasattr(value, "shape"):
        arr = np.asarray(value) if isinstance(value, np.ndarray) else value
        shape = "×".join(str(int(s)) for s in arr.shape) or "1"
        return f"{shape} {getattr(arr, 'dtype', '')}".strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:g}"
    if isinstance(value, (list, tuple)):
        return "{" + ", ".join(str(v) for v in value) + "}"
    return str(value)


def truncate_name(s: str, max_len: int = 20) -> str:
    """
    Truncate a layer name by keeping the last max_len characters.
    Generated names differ in their suffix, so that part is kept.
    """
    if not isinstance(s, str):
        s = str(s)
    if len(s) <= max_len:
        return s

    return "…" + s[-(max_len - 1):]
