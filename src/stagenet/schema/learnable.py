"""
Learnable-parameter schema.

A learnable parameter (weights, bias) is persisted together with the
descriptor of the function that initialises it and the per-parameter
multipliers the optimiser applies to the global learning rate and L2
regularisation.

Initializer descriptors are a tagged variant:

- BuiltinInitializer: one of the named initializers plus optional
  constructor arguments (e.g. unit-forget-gate takes ["LSTM"])
- CustomInitializer: an importable "module:qualname" function reference
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import numpy as np

from stagenet.errors import FormatError
from stagenet.schema.wire import to_host_array

BUILTIN_INITIALIZERS = (
    "glorot",
    "he",
    "orthogonal",
    "narrow-normal",
    "zeros",
    "ones",
    "unit-forget-gate",
)


@dataclass(frozen=True)
class BuiltinInitializer:
    name: str
    arguments: Optional[Tuple[Any, ...]] = None

    def to_wire(self) -> Dict[str, Any]:
        return {
            "kind": "builtin",
            "name": self.name,
            "arguments": None if self.arguments is None else list(self.arguments),
        }


@dataclass(frozen=True)
class CustomInitializer:
    function: str

    def to_wire(self) -> Dict[str, Any]:
        return {"kind": "custom", "function": self.function}


Initializer = Union[BuiltinInitializer, CustomInitializer]


def initializer_from_wire(data: Mapping[str, Any]) -> Initializer:
    if not isinstance(data, Mapping):
        raise FormatError("Initializer must be a mapping", field="initializer")
    kind = data.get("kind")
    if kind == "builtin":
        if "name" not in data:
            raise FormatError("Builtin initializer has no name", field="initializer")
        args = data.get("arguments")
        return BuiltinInitializer(
            name=data["name"],
            arguments=None if args is None else tuple(args),
        )
    if kind == "custom":
        if "function" not in data:
            raise FormatError("Custom initializer has no function", field="initializer")
        return CustomInitializer(function=data["function"])
    raise FormatError(f"Unknown initializer kind {kind!r}", field="initializer")


@dataclass(frozen=True)
class LearnableParameterRecord:
    """
    Persisted snapshot of one learnable tensor.

    Invariants
    ----------
    - value is None or a dense numpy array on host memory
    - factors are plain floats (range checks happen at decode)
    """

    value: Optional[np.ndarray]
    initializer: Initializer
    learn_rate_factor: float = 1.0
    regularization_factor: float = 1.0

    def to_wire(self) -> Dict[str, Any]:
        return {
            "value": to_host_array(self.value),
            "initializer": self.initializer.to_wire(),
            "learn_rate_factor": float(self.learn_rate_factor),
            "regularization_factor": float(self.regularization_factor),
        }

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> "LearnableParameterRecord":
        missing = [
            k
            for k in ("value", "initializer", "learn_rate_factor", "regularization_factor")
            if k not in data
        ]
        if missing:
            raise FormatError(
                "Learnable parameter record is incomplete", field=missing[0]
            )
        return LearnableParameterRecord(
            value=to_host_array(data["value"]),
            initializer=initializer_from_wire(data["initializer"]),
            learn_rate_factor=data["learn_rate_factor"],
            regularization_factor=data["regularization_factor"],
        )
