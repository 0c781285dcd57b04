"""
Assemble a layer array into a torch module.

The layer array reads front to back (sequence input, LSTM, dropout,
fully connected, softmax, classification). Sizes left unset on a layer
are inferred from the layer before it; learnables that have no value
yet are drawn from their initializers. The classification layer does
not take part in the forward pass and becomes the network's loss.
"""

from typing import Any, List, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn

from stagenet.errors import ValidationError
from stagenet.layers.classification_layer import ClassificationLayer
from stagenet.layers.fully_connected_layer import FullyConnectedLayer
from stagenet.layers.lstm_layer import LSTMLayer
from stagenet.layers.sequence_input_layer import SequenceInputLayer
from stagenet.loggers.error_log import get_error_logger

logger = get_error_logger("network")


def infer_sizes(layers: Sequence[Any]) -> None:
    """Propagate feature sizes along the array, filling unset input sizes."""
    size: Optional[int] = None
    for i, layer in enumerate(layers):
        if isinstance(layer, SequenceInputLayer):
            out = layer.output_size
            size = int(np.prod(out)) if isinstance(out, tuple) else out
        elif isinstance(layer, (LSTMLayer, FullyConnectedLayer)):
            if size is None:
                raise ValidationError(
                    f"layer {i} has no preceding layer to infer its input size from",
                    "input_size",
                    layer.kind.value,
                )
            if layer.input_size is None:
                layer.input_size = size
            elif layer.input_size != size:
                raise ValidationError(
                    f"layer {i} expects {layer.input_size} inputs but receives {size}",
                    "input_size",
                    layer.kind.value,
                )
            size = layer.output_size
        elif isinstance(layer, ClassificationLayer):
            if layer.output_size is not None and size is not None and layer.output_size != size:
                raise ValidationError(
                    f"{layer.output_size} classes but the network outputs {size} values",
                    "classes",
                    layer.kind.value,
                )


class StageNetwork(nn.Module):
    """
    Forward pass over the non-output layers, plus the loss from the
    classification layer (None when the array has none).

    `blocks[i]` is the module built for `layers[i]`.
    """

    def __init__(self, blocks: List[nn.Module], loss: Optional[nn.Module] = None):
        super().__init__()
        self.blocks = nn.ModuleList(blocks)
        self.loss = loss

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        for block in self.blocks:
            x = block(x)
        return x


def build_network(layers: Sequence[Any]) -> StageNetwork:
    infer_sizes(layers)
    blocks: List[nn.Module] = []
    loss = None
    for layer in layers:
        if isinstance(layer, ClassificationLayer):
            loss = layer.to_module()
            continue
        blocks.append(layer.to_module())
    if loss is None:
        logger.warning("[StageNet] Layer array has no classification layer; network.loss is None")
    return StageNetwork(blocks, loss)


def capture_learnables(network: StageNetwork, layers: Sequence[Any]) -> None:
    """Copy trained torch parameters back into the live layers."""
    forward_layers = [l for l in layers if not isinstance(l, ClassificationLayer)]
    if len(forward_layers) != len(network.blocks):
        raise ValueError(
            f"network has {len(network.blocks)} blocks but {len(forward_layers)} layers were given"
        )
    for layer, block in zip(forward_layers, network.blocks):
        if hasattr(layer, "load_from_module"):
            layer.load_from_module(block)
