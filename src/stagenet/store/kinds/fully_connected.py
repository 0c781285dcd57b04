"""
FullyConnected records.

v1  name, input_size, output_size, weights, bias
v2  weight and bias values gathered onto the host
v3  + weight / bias initializers
"""

import numpy as np

from stagenet.layers.fully_connected_layer import FullyConnectedLayer
from stagenet.schema.layer_record import LayerKind
from stagenet.store.kinds.common import (
    add_initializer,
    host_learnable,
    is_empty,
    learnable_from_fields,
    learnable_to_fields,
)
from stagenet.store.registry import LayerSchema
from stagenet.store.upgrade import step


@step(1)
def _gather_to_host(record):
    """Force weight and bias values onto the host."""
    return {
        **record.fields,
        "weights": host_learnable(record, "weights"),
        "bias": host_learnable(record, "bias"),
    }


@step(2)
def _add_initializers(record):
    """Add the narrow-normal / zeros initializers older layers used."""
    return {
        **record.fields,
        "weights": add_initializer(record, "weights", "narrow-normal"),
        "bias": add_initializer(record, "bias", "zeros"),
    }


def encode(layer: FullyConnectedLayer):
    return {
        "name": layer.name,
        "input_size": layer.input_size,
        "output_size": layer.output_size,
        "weights": learnable_to_fields(layer.learnables()[0]),
        "bias": learnable_to_fields(layer.learnables()[1]),
    }


def build(record) -> FullyConnectedLayer:
    output_size = record.require("output_size")
    if not is_empty(output_size) and np.ndim(output_size) > 0:
        # Sizes saved for image inputs carry leading singleton dimensions
        output_size = np.ravel(output_size)[-1]

    weights = learnable_from_fields(record, "weights")
    bias = learnable_from_fields(record, "bias")

    input_size = record.get("input_size")
    if is_empty(input_size):
        input_size = None
    if input_size is None and weights.value is not None:
        input_size = weights.value.shape[1]
    elif input_size is not None and np.ndim(input_size) > 0:
        input_size = int(np.prod(input_size))

    return FullyConnectedLayer(
        output_size=output_size,
        input_size=input_size,
        weights=weights.value,
        bias=bias.value,
        weights_initializer=weights.initializer,
        bias_initializer=bias.initializer,
        weight_learn_rate_factor=weights.learn_rate_factor,
        bias_learn_rate_factor=bias.learn_rate_factor,
        weight_l2_factor=weights.regularization_factor,
        bias_l2_factor=bias.regularization_factor,
        name=record.get("name", ""),
    )


SCHEMA = LayerSchema(
    kind=LayerKind.FULLY_CONNECTED,
    upgrades=(_gather_to_host, _add_initializers),
    required_fields=("output_size", "weights", "bias"),
    encode=encode,
    build=build,
)
