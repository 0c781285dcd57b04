from typing import Tuple

import torch.nn as nn

from stagenet.layers.base_layer import GENERAL, HYPERPARAMETERS, BaseLayer
from stagenet.layers.validation import check_probability
from stagenet.schema.layer_record import LayerKind


class DropoutLayer(BaseLayer):
    """Randomly zeroes inputs with `probability` during training only."""

    kind = LayerKind.DROPOUT

    def __init__(self, probability: float = 0.5, name: str = ""):
        super().__init__(name)
        self.probability = probability

    @property
    def probability(self) -> float:
        return self._probability

    @probability.setter
    def probability(self, value: float) -> None:
        self._probability = check_probability(value, "probability", self.kind.value).unwrap()

    def one_line_display(self) -> Tuple[str, str]:
        return f"{self._probability * 100:g}% dropout", "Dropout"

    def property_groups(self):
        return [(GENERAL, ["name"]), (HYPERPARAMETERS, ["probability"])]

    def to_module(self) -> nn.Module:
        return nn.Dropout(p=self._probability)
