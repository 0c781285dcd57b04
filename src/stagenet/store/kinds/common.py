"""
Helpers shared by the per-kind schemas.

Learnable parameters live in records as plain mappings in the
`LearnableParameterRecord` wire form; dynamic state parameters as
`{"value": array}`.
"""

from typing import Any, Dict, Mapping, Optional

from stagenet.errors import FormatError
from stagenet.layers.learnable import LearnableParameter
from stagenet.schema.layer_record import LayerRecord
from stagenet.schema.learnable import BuiltinInitializer, LearnableParameterRecord
from stagenet.schema.wire import to_host_array


def learnable_to_fields(param: LearnableParameter) -> Dict[str, Any]:
    return param.to_record().to_wire()


def learnable_from_fields(record: LayerRecord, field: str) -> LearnableParameter:
    data = record.require(field)
    if not isinstance(data, Mapping):
        raise FormatError(
            "Learnable parameter must be a mapping",
            layer_kind=record.layer_kind.value,
            schema_version=record.schema_version,
            field=field,
        )
    try:
        param_record = LearnableParameterRecord.from_wire(dict(data))
    except FormatError as exc:
        raise FormatError(
            f"Learnable parameter '{field}' is malformed: {exc}",
            layer_kind=record.layer_kind.value,
            schema_version=record.schema_version,
            field=field,
        ) from exc
    return LearnableParameter.from_record(param_record, field, record.layer_kind.value)


def host_learnable(record: LayerRecord, field: str) -> Dict[str, Any]:
    """Copy of a learnable mapping with its value forced onto the host."""
    data = dict(record.require(field))
    data["value"] = to_host_array(data.get("value"))
    return data


def add_initializer(
    record: LayerRecord,
    field: str,
    name: str,
    arguments: Optional[tuple] = None,
) -> Dict[str, Any]:
    data = dict(record.require(field))
    data["initializer"] = BuiltinInitializer(name, arguments).to_wire()
    return data


def is_empty(value: Any) -> bool:
    """None, an empty list or an empty array all mean "unset"."""
    if value is None:
        return True
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return getattr(value, "size", 1) == 0
