"""
Registry of layer schemas.

Every layer kind owns an independent version lineage described by a
`LayerSchema`: the ordered upgrade steps (step i moves version i+1 to
i+2, so the current version is len(upgrades) + 1), the fields a current
record must carry, the encoder producing those fields from a live layer
and the builder producing a live layer from a current record.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from stagenet.errors import FormatError
from stagenet.schema.layer_record import LayerKind, LayerRecord
from stagenet.store.upgrade import UpgradeStep


@dataclass(frozen=True)
class LayerSchema:
    kind: LayerKind
    upgrades: Tuple[UpgradeStep, ...]
    required_fields: Tuple[str, ...]
    encode: Callable[[Any], Dict[str, Any]]
    build: Callable[[LayerRecord], Any]
    defaults: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({"name": ""})
    )

    def __post_init__(self):
        for i, s in enumerate(self.upgrades):
            if s.source_version != i + 1:
                raise ValueError(
                    f"{self.kind.value}: upgrade step #{i} starts at version "
                    f"{s.source_version}, expected {i + 1}"
                )

    @property
    def current_version(self) -> int:
        return len(self.upgrades) + 1

    def step_from(self, version: int) -> UpgradeStep:
        return self.upgrades[version - 1]


class LayerRegistry:

    def __init__(self, schemas: Iterable[LayerSchema] = ()):
        self._schemas: Dict[LayerKind, LayerSchema] = {}
        for s in schemas:
            self.register(s)

    def register(self, schema: LayerSchema) -> None:
        if schema.kind in self._schemas:
            raise ValueError(f"Schema for '{schema.kind.value}' already registered.")
        self._schemas[schema.kind] = schema

    def get(self, kind: LayerKind) -> LayerSchema:
        schema = self._schemas.get(kind)
        if schema is None:
            raise FormatError("No schema registered", layer_kind=getattr(kind, "value", kind))
        return schema

    def kinds(self) -> Tuple[LayerKind, ...]:
        return tuple(self._schemas)


_DEFAULT_REGISTRY: Optional[LayerRegistry] = None


def default_registry() -> LayerRegistry:
    """Registry holding the schemas of every builtin layer kind."""
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        from stagenet.store.kinds import (
            classification,
            dropout,
            fully_connected,
            lstm,
            sequence_input,
            softmax,
        )

        _DEFAULT_REGISTRY = LayerRegistry(
            [
                sequence_input.SCHEMA,
                lstm.SCHEMA,
                dropout.SCHEMA,
                fully_connected.SCHEMA,
                softmax.SCHEMA,
                classification.SCHEMA,
            ]
        )
    return _DEFAULT_REGISTRY
