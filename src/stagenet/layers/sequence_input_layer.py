from typing import Any, List, Optional, Tuple

import numpy as np
import torch.nn as nn

from stagenet.errors import ValidationError
from stagenet.layers.base_layer import GENERAL, HYPERPARAMETERS, BaseLayer
from stagenet.layers.initializers import resolve_function
from stagenet.layers.modules import SequenceNormalization
from stagenet.layers.validation import (
    check_bool,
    check_choice,
    check_function_reference,
    check_positive_int,
    check_size,
    check_statistic,
)
from stagenet.schema.layer_record import LayerKind
from stagenet.utils.formatting import fmt_size

NORMALIZATIONS = (
    "zerocenter",
    "zscore",
    "rescale-symmetric",
    "rescale-zero-one",
    "none",
)
COMPLEX_NORMALIZATIONS = ("zerocenter", "zscore", "none")
NORMALIZATION_DIMENSIONS = ("auto", "channel", "element", "all")

# Which statistics each normalization consumes
STATISTICS_BY_NORMALIZATION = {
    "zerocenter": ("mean",),
    "zscore": ("mean", "std"),
    "rescale-symmetric": ("min", "max"),
    "rescale-zero-one": ("min", "max"),
}

RESCALE_TARGETS = {
    "rescale-symmetric": (-1.0, 1.0),
    "rescale-zero-one": (0.0, 1.0),
}


def statistic_shapes(input_size: Any, dimension: str) -> List[Tuple[int, ...]]:
    """
    Shapes a statistic may take for an input size and normalization
    dimension. Vector sequences have one channel per feature, so
    "channel" and "element" coincide for them.
    """
    dims = tuple(input_size) if isinstance(input_size, tuple) else (int(input_size),)
    scalar = [(), (1,)]
    channel = [(dims[-1],)] if len(dims) == 1 else [(1,) * (len(dims) - 1) + (dims[-1],)]
    element = [dims]

    if dimension == "all":
        return scalar
    if dimension == "channel":
        return channel
    if dimension == "element":
        return element
    return scalar + channel + element


class SequenceInputLayer(BaseLayer):
    """
    Sequence input layer.

    Accepts sequences whose time steps have `input_size` features (or an
    image size for sequences of images) and optionally normalizes them
    with statistics fitted on the training data.

    Invariant: every statistic's shape matches `normalization_dimension`.
    Changing the dimension re-validates the statistics already set.
    """

    kind = LayerKind.SEQUENCE_INPUT

    def __init__(
        self,
        input_size: Any,
        normalization: Any = "none",
        normalization_dimension: str = "auto",
        mean: Any = None,
        std: Any = None,
        min: Any = None,
        max: Any = None,
        min_length: int = 1,
        split_complex_inputs: bool = False,
        name: str = "",
    ):
        super().__init__(name)
        kind = self.kind.value
        self._input_size = check_size(input_size, "input_size", kind).unwrap()
        self._split_complex_inputs = check_bool(
            split_complex_inputs, "split_complex_inputs", kind
        ).unwrap()
        self._normalization = self._check_normalization(normalization)
        self._min_length = check_positive_int(min_length, "min_length", kind).unwrap()
        self._normalization_dimension = check_choice(
            normalization_dimension, NORMALIZATION_DIMENSIONS, "normalization_dimension", kind
        ).unwrap()

        self._stats = {"mean": None, "std": None, "min": None, "max": None}
        for stat, value in (("mean", mean), ("std", std), ("min", min), ("max", max)):
            if value is not None:
                self._set_statistic(stat, value)

    def _check_normalization(self, value: Any) -> str:
        kind = self.kind.value
        if isinstance(value, str) and ":" not in value:
            allowed = (
                COMPLEX_NORMALIZATIONS if self._split_complex_inputs else NORMALIZATIONS
            )
            return check_choice(value, allowed, "normalization", kind).unwrap()
        return check_function_reference(value, "normalization", kind).unwrap()

    @property
    def input_size(self) -> Any:
        return self._input_size

    @property
    def normalization(self) -> str:
        return self._normalization

    @property
    def is_custom_normalization(self) -> bool:
        return self._normalization not in NORMALIZATIONS

    @property
    def min_length(self) -> int:
        return self._min_length

    @property
    def split_complex_inputs(self) -> bool:
        return self._split_complex_inputs

    @property
    def normalization_dimension(self) -> str:
        return self._normalization_dimension

    @normalization_dimension.setter
    def normalization_dimension(self, value: str) -> None:
        kind = self.kind.value
        dimension = check_choice(
            value, NORMALIZATION_DIMENSIONS, "normalization_dimension", kind
        ).unwrap()
        shapes = statistic_shapes(self._input_size, dimension)
        for stat in self.statistic_names():
            if self._stats[stat] is not None:
                check_statistic(
                    self._stats[stat], stat, kind, shapes, allow_complex=stat == "mean"
                ).unwrap()
        self._normalization_dimension = dimension

    def statistic_names(self) -> Tuple[str, ...]:
        return STATISTICS_BY_NORMALIZATION.get(self._normalization, ())

    def _set_statistic(self, stat: str, value: Any) -> None:
        kind = self.kind.value
        if value is not None and stat not in self.statistic_names():
            raise ValidationError(
                f"not used by '{self._normalization}' normalization", stat, kind
            )
        shapes = statistic_shapes(self._input_size, self._normalization_dimension)
        self._stats[stat] = check_statistic(
            value, stat, kind, shapes, allow_complex=stat == "mean"
        ).unwrap()

    @property
    def mean(self) -> Optional[np.ndarray]:
        return self._stats["mean"]

    @mean.setter
    def mean(self, value: Any) -> None:
        self._set_statistic("mean", value)

    @property
    def std(self) -> Optional[np.ndarray]:
        return self._stats["std"]

    @std.setter
    def std(self, value: Any) -> None:
        self._set_statistic("std", value)

    @property
    def min(self) -> Optional[np.ndarray]:
        return self._stats["min"]

    @min.setter
    def min(self, value: Any) -> None:
        self._set_statistic("min", value)

    @property
    def max(self) -> Optional[np.ndarray]:
        return self._stats["max"]

    @max.setter
    def max(self, value: Any) -> None:
        self._set_statistic("max", value)

    @property
    def output_size(self) -> Any:
        if isinstance(self._input_size, tuple):
            return self._input_size
        if self._split_complex_inputs:
            return 2 * self._input_size
        return self._input_size

    def one_line_display(self) -> Tuple[str, str]:
        return (
            f"Sequence input with {fmt_size(self._input_size)} dimensions",
            "Sequence Input",
        )

    def property_groups(self):
        return [
            (GENERAL, ["name", "input_size", "min_length", "split_complex_inputs"]),
            (
                HYPERPARAMETERS,
                ["normalization", "normalization_dimension", *self.statistic_names()],
            ),
        ]

    def to_module(self) -> nn.Module:
        if self._normalization == "none":
            return nn.Identity()
        if self.is_custom_normalization:
            return SequenceNormalization(
                "custom", function=resolve_function(self._normalization)
            )
        return SequenceNormalization(
            mode=self._normalization,
            mean=self.mean,
            std=self.std,
            min_value=self.min,
            max_value=self.max,
            target_range=RESCALE_TARGETS.get(self._normalization, (0.0, 1.0)),
        )
