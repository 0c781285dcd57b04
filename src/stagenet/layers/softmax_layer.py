from typing import Tuple

import torch.nn as nn

from stagenet.layers.base_layer import BaseLayer
from stagenet.layers.validation import check_positive_int
from stagenet.schema.layer_record import LayerKind

VECTOR_CHANNEL_DIM = 1
IMAGE_CHANNEL_DIM = 3


class SoftmaxLayer(BaseLayer):
    """
    Softmax over the channel dimension.

    `channel_dim` follows the (spatial..., channel, batch) convention of
    saved layers: 1 for feature vectors and sequences, 3 for 2-D images.
    It is kept so records written for image data reload faithfully.
    """

    kind = LayerKind.SOFTMAX

    def __init__(self, name: str = "", channel_dim: int = VECTOR_CHANNEL_DIM):
        super().__init__(name)
        self.channel_dim = channel_dim

    @property
    def channel_dim(self) -> int:
        return self._channel_dim

    @channel_dim.setter
    def channel_dim(self, value: int) -> None:
        self._channel_dim = check_positive_int(value, "channel_dim", self.kind.value).unwrap()

    def one_line_display(self) -> Tuple[str, str]:
        return "softmax", "Softmax"

    def to_module(self) -> nn.Module:
        # torch data is (batch, ..., features) for vectors and NCHW for images
        if self._channel_dim == IMAGE_CHANNEL_DIM:
            return nn.Softmax(dim=1)
        return nn.Softmax(dim=-1)
