"""
Versioned layer record schema.

A `LayerRecord` is the persistable snapshot of one layer. It is the unit
the versioned store produces on encode and consumes on decode.

Design principles
-----------------
- Immutable: upgrade steps return new records, never patch in place
- Field layout depends on (layer_kind, schema_version) only
- Fields hold plain values: scalars, strings, lists, numpy arrays and
  nested plain dicts for learnable / state sub-records
- Separate wire representation (flat dict) for the persistence medium
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from stagenet.errors import FormatError
from stagenet.schema.wire import pack_value, unpack_value


class LayerKind(str, Enum):
    SEQUENCE_INPUT = "SequenceInput"
    FULLY_CONNECTED = "FullyConnected"
    LSTM = "LSTM"
    SOFTMAX = "Softmax"
    DROPOUT = "Dropout"
    CLASSIFICATION = "Classification"

    @classmethod
    def parse(cls, value: Any) -> "LayerKind":
        try:
            return cls(value)
        except ValueError:
            raise FormatError(f"Unknown layer kind {value!r}") from None


def _freeze(value: Any) -> Any:
    """Read-only view of nested mappings; list items are frozen in a new list."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return [_freeze(v) for v in value]
    return value


@dataclass(frozen=True)
class LayerRecord:
    """
    Persisted snapshot of a single layer.

    Invariants
    ----------
    - schema_version is a positive integer
    - layer_kind never changes across upgrades
    - fields and every mapping nested in it (learnable and state
      sub-records, transforms) are read-only; use `evolve` to derive a
      new record. Arrays are not locked and must not be written to
    """

    schema_version: int
    layer_kind: LayerKind
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "layer_kind", LayerKind.parse(self.layer_kind))
        if not isinstance(self.fields, Mapping):
            raise FormatError(
                "Record fields must be a mapping", layer_kind=self.layer_kind.value
            )
        object.__setattr__(self, "fields", _freeze(self.fields))

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def has(self, name: str) -> bool:
        return name in self.fields

    def require(self, name: str) -> Any:
        """Return a field or raise FormatError naming the missing field."""
        if name not in self.fields:
            raise FormatError(
                "Record is missing a required field",
                layer_kind=self.layer_kind.value,
                schema_version=self.schema_version,
                field=name,
            )
        return self.fields[name]

    def evolve(
        self,
        schema_version: Optional[int] = None,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> "LayerRecord":
        return replace(
            self,
            schema_version=(
                self.schema_version if schema_version is None else schema_version
            ),
            fields=self.fields if fields is None else fields,
        )

    def to_wire(self) -> Dict[str, Any]:
        """
        Convert the record to a wire-friendly representation.

        Wire format rationale
        ---------------------
        - Flat top level with short, stable keys
        - Arrays packed as dtype/shape/bytes triples
        """
        return {
            "version": self.schema_version,
            "kind": self.layer_kind.value,
            "fields": pack_value(dict(self.fields)),
        }

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> "LayerRecord":
        """
        Reconstruct LayerRecord from wire representation.
        """
        try:
            version = data["version"]
            kind = data["kind"]
        except (KeyError, TypeError):
            raise FormatError("Wire record lacks 'version' or 'kind'") from None

        return LayerRecord(
            schema_version=version,
            layer_kind=kind,
            fields=unpack_value(data.get("fields") or {}),
        )
