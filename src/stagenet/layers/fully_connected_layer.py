from typing import Any, Optional, Tuple

import torch
import torch.nn as nn

from stagenet.errors import ValidationError
from stagenet.layers.base_layer import (
    GENERAL,
    HYPERPARAMETERS,
    LEARNABLE_PARAMETERS,
    BaseLayer,
)
from stagenet.layers.learnable import LearnableParameter, as_initializer
from stagenet.layers.validation import check_optional_positive_int, check_positive_int
from stagenet.schema.layer_record import LayerKind
from stagenet.schema.wire import to_host_array
from stagenet.utils.formatting import fmt_size


class FullyConnectedLayer(BaseLayer):
    """
    Fully connected layer: weights (output_size, input_size), bias (output_size,).

    `input_size` may stay unset until the layer is placed in a network;
    it is then inferred from the preceding layer.
    """

    kind = LayerKind.FULLY_CONNECTED

    def __init__(
        self,
        output_size: int,
        input_size: Optional[int] = None,
        weights: Any = None,
        bias: Any = None,
        weights_initializer: Any = "glorot",
        bias_initializer: Any = "zeros",
        weight_learn_rate_factor: float = 1.0,
        bias_learn_rate_factor: float = 1.0,
        weight_l2_factor: float = 1.0,
        bias_l2_factor: float = 0.0,
        name: str = "",
    ):
        super().__init__(name)
        kind = self.kind.value
        self._output_size = check_positive_int(output_size, "output_size", kind).unwrap()
        self._input_size = check_optional_positive_int(input_size, "input_size", kind).unwrap()
        self._weights = LearnableParameter(
            "weights",
            kind,
            as_initializer(weights_initializer, "weights_initializer", kind),
            weight_learn_rate_factor,
            weight_l2_factor,
        )
        self._bias = LearnableParameter(
            "bias",
            kind,
            as_initializer(bias_initializer, "bias_initializer", kind),
            bias_learn_rate_factor,
            bias_l2_factor,
        )
        self.weights = weights
        self.bias = bias

    @property
    def input_size(self) -> Optional[int]:
        return self._input_size

    @input_size.setter
    def input_size(self, value: Optional[int]) -> None:
        self._input_size = check_optional_positive_int(value, "input_size", self.kind.value).unwrap()

    @property
    def output_size(self) -> int:
        return self._output_size

    @property
    def weights(self) -> Any:
        return self._weights.value

    @weights.setter
    def weights(self, value: Any) -> None:
        shape = None if self._input_size is None else (self._output_size, self._input_size)
        self._weights.set_value(value, shape)

    @property
    def bias(self) -> Any:
        return self._bias.value

    @bias.setter
    def bias(self, value: Any) -> None:
        self._bias.set_value(value, (self._output_size,))

    @property
    def weights_initializer(self):
        return self._weights.initializer

    @property
    def bias_initializer(self):
        return self._bias.initializer

    def learnables(self) -> Tuple[LearnableParameter, ...]:
        return (self._weights, self._bias)

    def ensure_initialized(self) -> None:
        if self._input_size is None:
            raise ValidationError(
                "input size must be known before initialization", "input_size", self.kind.value
            )
        self._weights.ensure_initialized((self._output_size, self._input_size))
        self._bias.ensure_initialized((self._output_size,))

    def one_line_display(self) -> Tuple[str, str]:
        return (
            f"{fmt_size(self._output_size)} fully connected layer",
            "Fully Connected",
        )

    def property_groups(self):
        return [
            (GENERAL, ["name"]),
            (HYPERPARAMETERS, ["input_size", "output_size"]),
            (LEARNABLE_PARAMETERS, ["weights", "bias"]),
        ]

    def to_module(self) -> nn.Module:
        self.ensure_initialized()
        linear = nn.Linear(self._input_size, self._output_size)
        with torch.no_grad():
            linear.weight.copy_(torch.from_numpy(to_host_array(self.weights)))
            linear.bias.copy_(torch.from_numpy(to_host_array(self.bias)))
        return linear

    def load_from_module(self, module: nn.Linear) -> None:
        self.weights = module.weight.detach()
        self.bias = module.bias.detach()
