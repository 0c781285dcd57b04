from typing import Any, Optional, Tuple

import numpy as np

from stagenet.layers.initializers import initialize
from stagenet.layers.validation import (
    check_choice,
    check_factor,
    check_function_reference,
    check_learnable_value,
)
from stagenet.schema.learnable import (
    BUILTIN_INITIALIZERS,
    BuiltinInitializer,
    CustomInitializer,
    Initializer,
    LearnableParameterRecord,
)
from stagenet.schema.wire import to_host_array


def as_initializer(value: Any, field: str, kind: Optional[str] = None) -> Initializer:
    """Accept a descriptor, a builtin name, or a custom function / reference."""
    if isinstance(value, (BuiltinInitializer, CustomInitializer)):
        return value
    if isinstance(value, str) and ":" not in value:
        name = check_choice(value, BUILTIN_INITIALIZERS, field, kind).unwrap()
        args = ("LSTM",) if name == "unit-forget-gate" else None
        return BuiltinInitializer(name=name, arguments=args)
    return CustomInitializer(check_function_reference(value, field, kind).unwrap())


class LearnableParameter:
    """
    Live learnable tensor owned by a layer.

    `value` keeps whatever array-like the caller assigned (it may be a
    device or sparse tensor during training); conversion to a dense host
    array happens when the parameter is persisted.
    """

    def __init__(
        self,
        field: str,
        kind: str,
        initializer: Initializer,
        learn_rate_factor: float = 1.0,
        regularization_factor: float = 1.0,
        value: Any = None,
    ):
        self.field = field
        self.kind = kind
        self.initializer = initializer
        self.learn_rate_factor = check_factor(
            learn_rate_factor, f"{field}_learn_rate_factor", kind
        ).unwrap()
        self.regularization_factor = check_factor(
            regularization_factor, f"{field}_l2_factor", kind
        ).unwrap()
        self._value = None
        self.set_value(value)

    @property
    def value(self) -> Any:
        return self._value

    def set_value(self, value: Any, expected_shape: Optional[Tuple[int, ...]] = None):
        # An empty array means "not initialised yet"
        if value is not None and to_host_array(value).size == 0:
            value = None
        if value is not None:
            check_learnable_value(value, self.field, self.kind, expected_shape).unwrap()
        self._value = value

    def host_value(self) -> Optional[np.ndarray]:
        return to_host_array(self._value)

    def ensure_initialized(self, shape: Tuple[int, ...]) -> None:
        if self._value is None:
            self._value = initialize(self.initializer, shape)

    def to_record(self) -> LearnableParameterRecord:
        return LearnableParameterRecord(
            value=self.host_value(),
            initializer=self.initializer,
            learn_rate_factor=self.learn_rate_factor,
            regularization_factor=self.regularization_factor,
        )

    @classmethod
    def from_record(
        cls, record: LearnableParameterRecord, field: str, kind: str
    ) -> "LearnableParameter":
        param = cls(
            field=field,
            kind=kind,
            initializer=record.initializer,
            learn_rate_factor=record.learn_rate_factor,
            regularization_factor=record.regularization_factor,
        )
        value = record.value
        if value is not None and value.size == 0:
            value = None
        param._value = check_learnable_value(value, field, kind).unwrap()
        return param

    def __repr__(self) -> str:
        shape = None if self._value is None else tuple(np.shape(to_host_array(self._value)))
        return f"LearnableParameter({self.field}, shape={shape})"
