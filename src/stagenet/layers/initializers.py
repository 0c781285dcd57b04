"""
Weight / bias initializers.

Builtin initializers are evaluated with torch so that the generated
values follow torch's RNG (seed with `torch.manual_seed`). Custom
initializers are resolved from their "module:qualname" reference and
called with the parameter shape. All results are float32 numpy arrays.
"""

import importlib
import math
from typing import Callable, Optional, Tuple

import numpy as np
import torch

from stagenet.errors import ValidationError
from stagenet.schema.learnable import (
    BUILTIN_INITIALIZERS,
    BuiltinInitializer,
    CustomInitializer,
    Initializer,
)
from stagenet.schema.wire import to_host_array

_NARROW_NORMAL_STD = 0.01
_NUM_LSTM_GATES = 4


def _fans(shape: Tuple[int, ...]) -> Tuple[int, int]:
    if len(shape) == 1:
        return shape[0], shape[0]
    fan_out, fan_in = shape[0], int(np.prod(shape[1:]))
    return fan_in, fan_out


def resolve_function(reference: str) -> Callable:
    module_name, _, qualname = reference.partition(":")
    obj = importlib.import_module(module_name)
    for part in qualname.split("."):
        obj = getattr(obj, part)
    return obj


def initialize(
    initializer: Initializer,
    shape: Tuple[int, ...],
    generator: Optional[torch.Generator] = None,
) -> np.ndarray:
    """Create a parameter of `shape` from an initializer descriptor."""
    shape = tuple(int(s) for s in shape)

    if isinstance(initializer, CustomInitializer):
        fn = resolve_function(initializer.function)
        value = to_host_array(fn(shape))
        if tuple(value.shape) != shape:
            raise ValidationError(
                f"custom initializer returned shape {tuple(value.shape)}, expected {shape}",
                field="initializer",
            )
        return value.astype(np.float32)

    if not isinstance(initializer, BuiltinInitializer):
        raise TypeError(f"Unsupported initializer {initializer!r}")

    name = initializer.name
    t = torch.empty(shape, dtype=torch.float32)

    with torch.no_grad():
        if name == "zeros":
            t.zero_()
        elif name == "ones":
            t.fill_(1.0)
        elif name == "narrow-normal":
            t.normal_(0.0, _NARROW_NORMAL_STD, generator=generator)
        elif name == "glorot":
            fan_in, fan_out = _fans(shape)
            bound = math.sqrt(6.0 / (fan_in + fan_out))
            t.uniform_(-bound, bound, generator=generator)
        elif name == "he":
            fan_in, _ = _fans(shape)
            t.normal_(0.0, math.sqrt(2.0 / fan_in), generator=generator)
        elif name == "orthogonal":
            if len(shape) < 2:
                raise ValidationError(
                    "orthogonal initialization needs a matrix", field="initializer"
                )
            torch.nn.init.orthogonal_(t, generator=generator)
        elif name == "unit-forget-gate":
            # Gate blocks are stacked input, forget, cell, output.
            t.zero_()
            block = shape[0] // _NUM_LSTM_GATES
            t[block : 2 * block] = 1.0
        else:
            raise ValidationError(
                f"unknown initializer '{name}', expected one of {BUILTIN_INITIALIZERS}",
                field="initializer",
            )

    return t.numpy()
