"""
VersionedLayerStore: encode live layers into versioned records and
decode records of any older version back into live layers.

Each layer kind owns an independent version lineage (see
`stagenet.store.registry`). Decoding walks the kind's upgrade chain one
step at a time, from the record's version up to the current one, then
hands the current fields to the kind's builder which validates them.

Decode is all-or-nothing: records are immutable, so a failure at any
point leaves the input untouched and returns no layer.
"""

from typing import Any, Optional

from stagenet.errors import FormatError
from stagenet.loggers.error_log import get_error_logger, setup_error_logger
from stagenet.schema.layer_record import LayerKind, LayerRecord
from stagenet.store.registry import LayerRegistry, default_registry


class VersionedLayerStore:

    def __init__(self, registry: Optional[LayerRegistry] = None):
        self.registry = registry if registry is not None else default_registry()
        setup_error_logger()
        self.logger = get_error_logger("VersionedLayerStore")

    def current_version(self, kind: Any) -> int:
        return self.registry.get(LayerKind.parse(kind)).current_version

    def encode(self, layer: Any) -> LayerRecord:
        """Snapshot a live layer at the current version of its kind."""
        schema = self.registry.get(layer.kind)
        return LayerRecord(
            schema_version=schema.current_version,
            layer_kind=schema.kind,
            fields=schema.encode(layer),
        )

    def upgrade(self, record: LayerRecord) -> LayerRecord:
        """
        Bring a record to the current version of its kind.

        Exactly (current - record.schema_version) steps run; a current
        record is returned as is.
        """
        try:
            return self._upgrade(record)
        except FormatError as e:
            self.logger.warning(f"[StageNet] Cannot upgrade record: {e}")
            raise

    def _upgrade(self, record: LayerRecord) -> LayerRecord:
        schema = self.registry.get(record.layer_kind)
        version = record.schema_version
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            raise FormatError(
                f"Schema version must be a positive integer, got {version!r}",
                layer_kind=schema.kind.value,
            )
        if version > schema.current_version:
            raise FormatError(
                f"Record was written by a newer release "
                f"(current version is {schema.current_version})",
                layer_kind=schema.kind.value,
                schema_version=version,
            )

        while record.schema_version < schema.current_version:
            step = schema.step_from(record.schema_version)
            try:
                record = step(record)
            except (KeyError, TypeError, ValueError) as e:
                raise FormatError(
                    f"Upgrade step {step.source_version}->{step.target_version} failed: {e}",
                    layer_kind=schema.kind.value,
                    schema_version=step.source_version,
                ) from e
            self.logger.debug(
                f"[StageNet] {schema.kind.value} v{step.source_version}->"
                f"v{step.target_version}: {step.description}"
            )

        for name in schema.required_fields:
            record.require(name)
        return record

    def decode(self, record: LayerRecord) -> Any:
        """Upgrade a record and build the live layer from it."""
        record = self.upgrade(record)
        try:
            return self.registry.get(record.layer_kind).build(record)
        except FormatError as e:
            self.logger.warning(f"[StageNet] Cannot decode record: {e}")
            raise
        except (KeyError, TypeError, AttributeError) as e:
            error = FormatError(
                f"Record fields are malformed: {e!r}",
                layer_kind=record.layer_kind.value,
                schema_version=record.schema_version,
            )
            self.logger.warning(f"[StageNet] Cannot decode record: {error}")
            raise error from e
