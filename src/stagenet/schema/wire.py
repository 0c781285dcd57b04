"""
Wire helpers shared by every record schema.

Two concerns live here:

- host residency: any numeric value that leaves a live layer (or is read
  back from a record) is materialised as a dense numpy array in process
  memory. Torch tensors are detached, densified and copied off their
  device; numpy arrays are copied so a record never aliases caller state.
- wire packing: numpy arrays become flat, msgpack-friendly dicts
  (`{"__ndarray__": {"dtype", "shape", "data"}}`) and back.
"""

from typing import Any, Dict, Mapping

import numpy as np
import torch

NDARRAY_TAG = "__ndarray__"


def to_host_array(value: Any) -> Any:
    """
    Force a numeric value into a dense, host-resident numpy array.

    `None` passes through (uninitialised learnable or absent statistic).
    Python scalars and nested lists become arrays as well.
    """
    if value is None:
        return None

    if isinstance(value, torch.Tensor):
        t = value.detach()
        if t.layout != torch.strided:
            t = t.to_dense()
        t = t.to("cpu").resolve_conj().resolve_neg()
        return t.numpy().copy()

    if isinstance(value, np.ndarray):
        return np.array(value, copy=True, order="C")

    # Array-likes that know how to densify themselves (e.g. sparse matrices)
    if hasattr(value, "toarray"):
        return np.asarray(value.toarray()).copy()

    return np.array(value)


def is_real_numeric(arr: np.ndarray) -> bool:
    return arr.dtype.kind in ("b", "i", "u", "f")


def is_numeric(arr: np.ndarray) -> bool:
    return arr.dtype.kind in ("b", "i", "u", "f", "c")


def pack_array(arr: np.ndarray) -> Dict[str, Any]:
    arr = np.ascontiguousarray(arr)
    return {
        NDARRAY_TAG: {
            "dtype": arr.dtype.str,
            "shape": list(arr.shape),
            "data": arr.tobytes(),
        }
    }


def unpack_array(data: Dict[str, Any]) -> np.ndarray:
    spec = data[NDARRAY_TAG]
    arr = np.frombuffer(spec["data"], dtype=np.dtype(spec["dtype"]))
    return arr.reshape(tuple(spec["shape"])).copy()


def pack_value(value: Any) -> Any:
    """Recursively convert a record field into its wire form."""
    if isinstance(value, torch.Tensor):
        return pack_array(to_host_array(value))
    if isinstance(value, np.ndarray):
        return pack_array(value)
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, Mapping):
        return {k: pack_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [pack_value(v) for v in value]
    return value


def unpack_value(value: Any) -> Any:
    """Inverse of `pack_value`. Lists stay lists; arrays are restored."""
    if isinstance(value, dict):
        if NDARRAY_TAG in value:
            return unpack_array(value)
        return {k: unpack_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [unpack_value(v) for v in value]
    return value
