from abc import ABC, abstractmethod
from typing import Any, List, Tuple

import torch.nn as nn

from stagenet.layers.validation import check_layer_name
from stagenet.schema.layer_record import LayerKind

GENERAL = "General"
HYPERPARAMETERS = "Hyperparameters"
LEARNABLE_PARAMETERS = "Learnable Parameters"
STATE_PARAMETERS = "State Parameters"


class BaseLayer(ABC):
    """
    Abstract base for the live layer wrappers.

    A layer holds validated configuration and, where it has any, its
    learnable parameters. Numeric work is delegated to the torch module
    returned by `to_module()`.
    """

    kind: LayerKind

    def __init__(self, name: str = ""):
        self._name = ""
        self.name = name

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = check_layer_name(value, self.kind.value).unwrap()

    @abstractmethod
    def one_line_display(self) -> Tuple[str, str]:
        """Return (description, type) for array summaries."""
        raise NotImplementedError("Must be implemented by subclasses.")

    def property_groups(self) -> List[Tuple[str, List[str]]]:
        return [(GENERAL, ["name"])]

    def properties(self) -> List[Tuple[str, List[Tuple[str, Any]]]]:
        """Property groups with their current values, for renderers."""
        return [
            (group, [(p, getattr(self, p)) for p in names])
            for group, names in self.property_groups()
        ]

    @abstractmethod
    def to_module(self) -> nn.Module:
        raise NotImplementedError("Must be implemented by subclasses.")

    def __repr__(self) -> str:
        description, type_name = self.one_line_display()
        return f"{type_name}(name={self.name!r}): {description}"
