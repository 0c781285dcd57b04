"""
Upgrade steps for versioned layer records.

A step moves a record from `source_version` to `source_version + 1`.
The wrapped transform is a pure function of the record returning the
complete field mapping for the next version; the step takes care of the
version bookkeeping and of the no-op guard for records that are already
at or past its target.
"""

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from stagenet.errors import FormatError
from stagenet.schema.layer_record import LayerRecord

Transform = Callable[[LayerRecord], Mapping[str, Any]]


@dataclass(frozen=True)
class UpgradeStep:
    source_version: int
    transform: Transform
    description: str = ""

    @property
    def target_version(self) -> int:
        return self.source_version + 1

    def __call__(self, record: LayerRecord) -> LayerRecord:
        if record.schema_version >= self.target_version:
            return record
        if record.schema_version != self.source_version:
            raise FormatError(
                f"Upgrade step {self.source_version}->{self.target_version} "
                "cannot skip versions",
                layer_kind=record.layer_kind.value,
                schema_version=record.schema_version,
            )
        return record.evolve(
            schema_version=self.target_version,
            fields=self.transform(record),
        )


def step(source_version: int, description: str = "") -> Callable[[Transform], UpgradeStep]:
    """Decorator turning a transform into an `UpgradeStep`."""

    def decorator(fn: Transform) -> UpgradeStep:
        doc = (fn.__doc__ or "").strip()
        return UpgradeStep(
            source_version=source_version,
            transform=fn,
            description=description or (doc.splitlines()[0] if doc else fn.__name__),
        )

    return decorator
