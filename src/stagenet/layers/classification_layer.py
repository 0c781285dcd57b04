from typing import Any, List, Optional, Tuple, Union

import numpy as np
import torch
import torch.nn as nn

from stagenet.errors import ValidationError
from stagenet.layers.base_layer import GENERAL, HYPERPARAMETERS, BaseLayer
from stagenet.layers.modules import ProbabilityCrossEntropy
from stagenet.schema.layer_record import LayerKind
from stagenet.schema.wire import is_real_numeric, to_host_array

AUTO = "auto"
NO_WEIGHTS = "none"


class ClassificationLayer(BaseLayer):
    """
    Cross-entropy classification output.

    `classes` is "auto" (set from the training labels) or the ordered
    list of class labels. `class_weights` is "none" or one positive
    weight per class; weights require explicit classes.
    """

    kind = LayerKind.CLASSIFICATION

    def __init__(
        self,
        classes: Union[str, List[Any]] = AUTO,
        class_weights: Any = NO_WEIGHTS,
        name: str = "",
    ):
        super().__init__(name)
        self._classes = self._check_classes(classes)
        self._class_weights = NO_WEIGHTS
        self.class_weights = class_weights

    def _check_classes(self, classes: Any) -> Union[str, List[str]]:
        if isinstance(classes, str):
            if classes.lower() == AUTO:
                return AUTO
            raise ValidationError("must be 'auto' or a list of labels", "classes", self.kind.value)
        labels = [str(c) for c in classes]
        if not labels or len(set(labels)) != len(labels):
            raise ValidationError("labels must be unique and non-empty", "classes", self.kind.value)
        return labels

    @property
    def classes(self) -> Union[str, List[str]]:
        return self._classes

    @classes.setter
    def classes(self, value: Any) -> None:
        classes = self._check_classes(value)
        if not isinstance(self._class_weights, str) and (
            classes == AUTO or len(classes) != len(self._class_weights)
        ):
            raise ValidationError(
                "class weights require one class per weight", "classes", self.kind.value
            )
        self._classes = classes

    @property
    def class_weights(self) -> Union[str, np.ndarray]:
        return self._class_weights

    @class_weights.setter
    def class_weights(self, value: Any) -> None:
        kind = self.kind.value
        if isinstance(value, str):
            if value.lower() != NO_WEIGHTS:
                raise ValidationError("must be 'none' or a weight vector", "class_weights", kind)
            self._class_weights = NO_WEIGHTS
            return
        weights = to_host_array(value).ravel()
        if not is_real_numeric(weights) or not np.all(np.isfinite(weights)) or np.any(weights <= 0):
            raise ValidationError("weights must be finite and positive", "class_weights", kind)
        if self._classes == AUTO:
            raise ValidationError("class weights require explicit classes", "class_weights", kind)
        if len(weights) != len(self._classes):
            raise ValidationError(
                f"expected {len(self._classes)} weights, got {len(weights)}", "class_weights", kind
            )
        self._class_weights = weights.astype(np.float64)

    @property
    def output_size(self) -> Optional[int]:
        return None if self._classes == AUTO else len(self._classes)

    def one_line_display(self) -> Tuple[str, str]:
        if self._classes == AUTO:
            return "crossentropyex", "Classification Output"
        shown = ", ".join(self._classes[:3])
        more = f" and {len(self._classes) - 3} other classes" if len(self._classes) > 3 else ""
        return f"crossentropyex with classes {shown}{more}", "Classification Output"

    def property_groups(self):
        return [
            (GENERAL, ["name", "classes", "class_weights"]),
            (HYPERPARAMETERS, ["output_size"]),
        ]

    def to_module(self) -> nn.Module:
        """
        The loss expects the probabilities produced by the softmax layer,
        so it is negative log likelihood over their log.
        """
        weight = None
        if not isinstance(self._class_weights, str):
            weight = torch.from_numpy(self._class_weights).float()
        return ProbabilityCrossEntropy(weight)
