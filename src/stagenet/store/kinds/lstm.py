"""
LSTM records.

v1  name, input_size, output_size, return_sequence, input_weights,
    recurrent_weights, bias, cell_state and output_state as bare arrays
v2  states wrapped as {"value": ...}; output_state renamed hidden_state,
    output_size renamed num_hidden_units
v3  + state / gate activation functions
v4  + input, recurrent and bias initializers
v5  + has_state_inputs, has_state_outputs
"""

from typing import Any, Mapping

from stagenet.errors import FormatError
from stagenet.layers.lstm_layer import LSTMLayer
from stagenet.schema.layer_record import LayerKind, LayerRecord
from stagenet.schema.wire import to_host_array
from stagenet.store.kinds.common import (
    add_initializer,
    is_empty,
    learnable_from_fields,
    learnable_to_fields,
)
from stagenet.store.registry import LayerSchema
from stagenet.store.upgrade import step


def _wrap_state(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {"value": to_host_array(value.get("value"))}
    return {"value": to_host_array(value)}


@step(1)
def _restructure_states(record):
    """Wrap states as mappings and rename output_state / output_size."""
    fields = dict(record.fields)
    fields["cell_state"] = _wrap_state(record.require("cell_state"))
    fields["hidden_state"] = _wrap_state(record.require("output_state"))
    fields["num_hidden_units"] = record.require("output_size")
    del fields["output_state"]
    del fields["output_size"]
    return fields


@step(2)
def _add_activations(record):
    """Add tanh state and sigmoid gate activations."""
    return {
        **record.fields,
        "state_activation_function": "tanh",
        "gate_activation_function": "sigmoid",
    }


@step(3)
def _add_initializers(record):
    """Add the narrow-normal and unit-forget-gate initializers older layers used."""
    return {
        **record.fields,
        "input_weights": add_initializer(record, "input_weights", "narrow-normal"),
        "recurrent_weights": add_initializer(record, "recurrent_weights", "narrow-normal"),
        "bias": add_initializer(record, "bias", "unit-forget-gate", ("LSTM",)),
    }


@step(4)
def _add_state_flags(record):
    """Add has_state_inputs / has_state_outputs, both false."""
    return {**record.fields, "has_state_inputs": False, "has_state_outputs": False}


def _state_value(record: LayerRecord, field: str) -> Any:
    data = record.require(field)
    if is_empty(data):
        return None
    if not isinstance(data, Mapping) or "value" not in data:
        raise FormatError(
            "State parameter must be a mapping with a 'value'",
            layer_kind=record.layer_kind.value,
            schema_version=record.schema_version,
            field=field,
        )
    value = to_host_array(data["value"])
    return None if is_empty(value) else value


def encode(layer: LSTMLayer):
    input_weights, recurrent_weights, bias = layer.learnables()
    fields = {
        "name": layer.name,
        "input_size": layer.input_size,
        "num_hidden_units": layer.num_hidden_units,
        "return_sequence": layer.return_sequence,
        "state_activation_function": layer.state_activation_function,
        "gate_activation_function": layer.gate_activation_function,
        "has_state_inputs": layer.has_state_inputs,
        "has_state_outputs": layer.has_state_outputs,
        "input_weights": learnable_to_fields(input_weights),
        "recurrent_weights": learnable_to_fields(recurrent_weights),
        "bias": learnable_to_fields(bias),
        "initial_cell_state": to_host_array(layer.initial_cell_state),
        "initial_hidden_state": to_host_array(layer.initial_hidden_state),
    }
    if layer.has_state_inputs:
        fields["cell_state"] = None
        fields["hidden_state"] = None
    else:
        fields["cell_state"] = {"value": to_host_array(layer.cell_state)}
        fields["hidden_state"] = {"value": to_host_array(layer.hidden_state)}
    return fields


def build(record) -> LSTMLayer:
    input_weights = learnable_from_fields(record, "input_weights")
    recurrent_weights = learnable_from_fields(record, "recurrent_weights")
    bias = learnable_from_fields(record, "bias")
    has_state_inputs = record.require("has_state_inputs")

    input_size = record.get("input_size")
    if is_empty(input_size):
        input_size = None
        if input_weights.value is not None:
            input_size = input_weights.value.shape[1]

    layer = LSTMLayer(
        num_hidden_units=record.require("num_hidden_units"),
        output_mode="sequence" if record.require("return_sequence") else "last",
        state_activation_function=record.require("state_activation_function"),
        gate_activation_function=record.require("gate_activation_function"),
        has_state_inputs=has_state_inputs,
        has_state_outputs=record.require("has_state_outputs"),
        input_size=input_size,
        input_weights=input_weights.value,
        recurrent_weights=recurrent_weights.value,
        bias=bias.value,
        input_weights_initializer=input_weights.initializer,
        recurrent_weights_initializer=recurrent_weights.initializer,
        bias_initializer=bias.initializer,
        input_weights_learn_rate_factor=input_weights.learn_rate_factor,
        recurrent_weights_learn_rate_factor=recurrent_weights.learn_rate_factor,
        bias_learn_rate_factor=bias.learn_rate_factor,
        input_weights_l2_factor=input_weights.regularization_factor,
        recurrent_weights_l2_factor=recurrent_weights.regularization_factor,
        bias_l2_factor=bias.regularization_factor,
        hidden_state=None if has_state_inputs else _state_value(record, "hidden_state"),
        cell_state=None if has_state_inputs else _state_value(record, "cell_state"),
        name=record.get("name", ""),
    )
    initial_hidden = record.get("initial_hidden_state")
    initial_cell = record.get("initial_cell_state")
    layer.initial_hidden_state = None if is_empty(initial_hidden) else to_host_array(initial_hidden)
    layer.initial_cell_state = None if is_empty(initial_cell) else to_host_array(initial_cell)
    return layer


SCHEMA = LayerSchema(
    kind=LayerKind.LSTM,
    upgrades=(_restructure_states, _add_activations, _add_initializers, _add_state_flags),
    required_fields=(
        "num_hidden_units",
        "return_sequence",
        "state_activation_function",
        "gate_activation_function",
        "has_state_inputs",
        "has_state_outputs",
        "input_weights",
        "recurrent_weights",
        "bias",
        "cell_state",
        "hidden_state",
    ),
    encode=encode,
    build=build,
)
