from typing import Any, Optional, Tuple

import numpy as np
import torch
import torch.nn as nn

from stagenet.errors import ValidationError
from stagenet.layers.base_layer import (
    GENERAL,
    HYPERPARAMETERS,
    LEARNABLE_PARAMETERS,
    STATE_PARAMETERS,
    BaseLayer,
)
from stagenet.layers.learnable import LearnableParameter, as_initializer
from stagenet.layers.modules import LSTMBlock
from stagenet.layers.validation import (
    check_bool,
    check_choice,
    check_learnable_value,
    check_optional_positive_int,
    check_positive_int,
)
from stagenet.schema.layer_record import LayerKind
from stagenet.schema.wire import to_host_array

OUTPUT_MODES = ("sequence", "last")
STATE_ACTIVATIONS = ("tanh", "softsign")
GATE_ACTIVATIONS = ("sigmoid", "hard-sigmoid")
NUM_GATES = 4


class LSTMLayer(BaseLayer):
    """
    Long short-term memory layer.

    Weight matrices stack the four gates vertically in the order input
    gate, forget gate, cell candidate, output gate:

    - input_weights     (4*num_hidden_units, input_size)
    - recurrent_weights (4*num_hidden_units, num_hidden_units)
    - bias              (4*num_hidden_units,)

    When `has_state_inputs` is true the hidden and cell states arrive as
    extra inputs and must not be set on the layer.
    """

    kind = LayerKind.LSTM

    def __init__(
        self,
        num_hidden_units: int,
        output_mode: str = "sequence",
        state_activation_function: str = "tanh",
        gate_activation_function: str = "sigmoid",
        has_state_inputs: bool = False,
        has_state_outputs: bool = False,
        input_size: Optional[int] = None,
        input_weights: Any = None,
        recurrent_weights: Any = None,
        bias: Any = None,
        input_weights_initializer: Any = "glorot",
        recurrent_weights_initializer: Any = "orthogonal",
        bias_initializer: Any = "unit-forget-gate",
        input_weights_learn_rate_factor: float = 1.0,
        recurrent_weights_learn_rate_factor: float = 1.0,
        bias_learn_rate_factor: float = 1.0,
        input_weights_l2_factor: float = 1.0,
        recurrent_weights_l2_factor: float = 1.0,
        bias_l2_factor: float = 0.0,
        hidden_state: Any = None,
        cell_state: Any = None,
        name: str = "",
    ):
        super().__init__(name)
        kind = self.kind.value
        self._num_hidden_units = check_positive_int(
            num_hidden_units, "num_hidden_units", kind
        ).unwrap()
        self._input_size = check_optional_positive_int(input_size, "input_size", kind).unwrap()
        self.output_mode = output_mode
        self._state_activation_function = check_choice(
            state_activation_function, STATE_ACTIVATIONS, "state_activation_function", kind
        ).unwrap()
        self._gate_activation_function = check_choice(
            gate_activation_function, GATE_ACTIVATIONS, "gate_activation_function", kind
        ).unwrap()
        self._has_state_inputs = check_bool(has_state_inputs, "has_state_inputs", kind).unwrap()
        self._has_state_outputs = check_bool(
            has_state_outputs, "has_state_outputs", kind
        ).unwrap()

        self._input_weights = LearnableParameter(
            "input_weights",
            kind,
            as_initializer(input_weights_initializer, "input_weights_initializer", kind),
            input_weights_learn_rate_factor,
            input_weights_l2_factor,
        )
        self._recurrent_weights = LearnableParameter(
            "recurrent_weights",
            kind,
            as_initializer(recurrent_weights_initializer, "recurrent_weights_initializer", kind),
            recurrent_weights_learn_rate_factor,
            recurrent_weights_l2_factor,
        )
        self._bias = LearnableParameter(
            "bias",
            kind,
            as_initializer(bias_initializer, "bias_initializer", kind),
            bias_learn_rate_factor,
            bias_l2_factor,
        )
        self.input_weights = input_weights
        self.recurrent_weights = recurrent_weights
        self.bias = bias

        self._hidden_state = None
        self._cell_state = None
        self.initial_hidden_state: Optional[np.ndarray] = None
        self.initial_cell_state: Optional[np.ndarray] = None
        if self._has_state_inputs:
            if hidden_state is not None or cell_state is not None:
                raise ValidationError(
                    "states must not be set when the layer has state inputs",
                    "hidden_state" if hidden_state is not None else "cell_state",
                    kind,
                )
        else:
            self.hidden_state = hidden_state
            self.cell_state = cell_state

    # Sizes

    @property
    def input_size(self) -> Optional[int]:
        return self._input_size

    @input_size.setter
    def input_size(self, value: Optional[int]) -> None:
        self._input_size = check_optional_positive_int(value, "input_size", self.kind.value).unwrap()

    @property
    def num_hidden_units(self) -> int:
        return self._num_hidden_units

    @property
    def output_size(self) -> int:
        return self._num_hidden_units

    @property
    def output_mode(self) -> str:
        return "sequence" if self._return_sequence else "last"

    @output_mode.setter
    def output_mode(self, value: str) -> None:
        mode = check_choice(value, OUTPUT_MODES, "output_mode", self.kind.value).unwrap()
        self._return_sequence = mode == "sequence"

    @property
    def return_sequence(self) -> bool:
        return self._return_sequence

    @property
    def state_activation_function(self) -> str:
        return self._state_activation_function

    @property
    def gate_activation_function(self) -> str:
        return self._gate_activation_function

    @property
    def has_state_inputs(self) -> bool:
        return self._has_state_inputs

    @property
    def has_state_outputs(self) -> bool:
        return self._has_state_outputs

    # Learnable parameters

    def _weight_shapes(self):
        gates = NUM_GATES * self._num_hidden_units
        input_shape = None if self._input_size is None else (gates, self._input_size)
        return {
            "input_weights": input_shape,
            "recurrent_weights": (gates, self._num_hidden_units),
            "bias": (gates,),
        }

    @property
    def input_weights(self) -> Any:
        return self._input_weights.value

    @input_weights.setter
    def input_weights(self, value: Any) -> None:
        self._input_weights.set_value(value, self._weight_shapes()["input_weights"])

    @property
    def recurrent_weights(self) -> Any:
        return self._recurrent_weights.value

    @recurrent_weights.setter
    def recurrent_weights(self, value: Any) -> None:
        self._recurrent_weights.set_value(value, self._weight_shapes()["recurrent_weights"])

    @property
    def bias(self) -> Any:
        return self._bias.value

    @bias.setter
    def bias(self, value: Any) -> None:
        self._bias.set_value(value, self._weight_shapes()["bias"])

    def learnables(self) -> Tuple[LearnableParameter, ...]:
        return (self._input_weights, self._recurrent_weights, self._bias)

    @property
    def input_weights_initializer(self):
        return self._input_weights.initializer

    @property
    def recurrent_weights_initializer(self):
        return self._recurrent_weights.initializer

    @property
    def bias_initializer(self):
        return self._bias.initializer

    # State parameters

    def _check_state(self, value: Any, field: str) -> Optional[np.ndarray]:
        if value is None:
            return None
        if self._has_state_inputs:
            raise ValidationError(
                "states must not be set when the layer has state inputs", field, self.kind.value
            )
        return check_learnable_value(
            value, field, self.kind.value, (self._num_hidden_units,)
        ).unwrap()

    @property
    def hidden_state(self) -> Optional[np.ndarray]:
        return self._hidden_state

    @hidden_state.setter
    def hidden_state(self, value: Any) -> None:
        self._hidden_state = self._check_state(value, "hidden_state")

    @property
    def cell_state(self) -> Optional[np.ndarray]:
        return self._cell_state

    @cell_state.setter
    def cell_state(self, value: Any) -> None:
        self._cell_state = self._check_state(value, "cell_state")

    def ensure_initialized(self) -> None:
        if self._input_size is None:
            raise ValidationError(
                "input size must be known before initialization", "input_size", self.kind.value
            )
        shapes = self._weight_shapes()
        for param in self.learnables():
            param.ensure_initialized(shapes[param.field])
        if not self._has_state_inputs:
            zeros = np.zeros(self._num_hidden_units, dtype=np.float32)
            if self._hidden_state is None:
                self._hidden_state = zeros.copy()
            if self._cell_state is None:
                self._cell_state = zeros.copy()

    # Display

    def one_line_display(self) -> Tuple[str, str]:
        return f"LSTM with {self._num_hidden_units} hidden units", "LSTM"

    def property_groups(self):
        return [
            (GENERAL, ["name", "has_state_inputs", "has_state_outputs"]),
            (
                HYPERPARAMETERS,
                [
                    "input_size",
                    "num_hidden_units",
                    "output_mode",
                    "state_activation_function",
                    "gate_activation_function",
                ],
            ),
            (LEARNABLE_PARAMETERS, ["input_weights", "recurrent_weights", "bias"]),
            (STATE_PARAMETERS, ["hidden_state", "cell_state"]),
        ]

    def to_module(self) -> nn.Module:
        if (self._state_activation_function, self._gate_activation_function) != (
            "tanh",
            "sigmoid",
        ):
            raise ValidationError(
                "torch.nn.LSTM supports only tanh state and sigmoid gate activations",
                "state_activation_function",
                self.kind.value,
            )
        self.ensure_initialized()

        lstm = nn.LSTM(self._input_size, self._num_hidden_units, batch_first=True)
        with torch.no_grad():
            lstm.weight_ih_l0.copy_(torch.from_numpy(to_host_array(self.input_weights)))
            lstm.weight_hh_l0.copy_(torch.from_numpy(to_host_array(self.recurrent_weights)))
            lstm.bias_ih_l0.copy_(torch.from_numpy(to_host_array(self.bias)))
            lstm.bias_hh_l0.zero_()

        initial_hidden = initial_cell = None
        if not self._has_state_inputs:
            initial_hidden = torch.from_numpy(to_host_array(self._hidden_state))
            initial_cell = torch.from_numpy(to_host_array(self._cell_state))
        return LSTMBlock(lstm, self._return_sequence, initial_hidden, initial_cell)

    def load_from_module(self, module: LSTMBlock) -> None:
        """Copy trained torch weights back into the layer."""
        lstm = module.lstm
        self.input_weights = lstm.weight_ih_l0.detach()
        self.recurrent_weights = lstm.weight_hh_l0.detach()
        # torch keeps two bias vectors; their sum is the single LSTM bias
        self.bias = (lstm.bias_ih_l0 + lstm.bias_hh_l0).detach()
