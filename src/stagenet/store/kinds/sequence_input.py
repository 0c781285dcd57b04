"""
SequenceInput records.

v1  name, input_size
v2  + normalization (list of transform mappings, empty for none)
v3  + normalization_dimension
v4  + min_length
v5  + split_complex_inputs

A transform mapping has a "type" of zerocenter, zscore, rescale or
custom plus the statistics it consumes. Rescale transforms carry their
target range, which distinguishes rescale-zero-one from
rescale-symmetric.
"""

from typing import Any, Dict, List, Mapping

from stagenet.errors import FormatError
from stagenet.layers.sequence_input_layer import RESCALE_TARGETS, SequenceInputLayer
from stagenet.schema.layer_record import LayerKind, LayerRecord
from stagenet.schema.wire import to_host_array
from stagenet.store.kinds.common import is_empty
from stagenet.store.registry import LayerSchema
from stagenet.store.upgrade import step


@step(1)
def _add_normalization(record):
    """Add an empty normalization."""
    return {**record.fields, "normalization": []}


@step(2)
def _add_normalization_dimension(record):
    """Add normalization_dimension 'auto'."""
    return {**record.fields, "normalization_dimension": "auto"}


@step(3)
def _add_min_length(record):
    """Add min_length 1."""
    return {**record.fields, "min_length": 1}


@step(4)
def _add_split_complex_inputs(record):
    """Add split_complex_inputs false."""
    return {**record.fields, "split_complex_inputs": False}


def _save_transforms(layer: SequenceInputLayer) -> List[Dict[str, Any]]:
    normalization = layer.normalization
    if normalization == "none":
        return []
    if layer.is_custom_normalization:
        return [{"type": "custom", "function": normalization}]
    if normalization in RESCALE_TARGETS:
        target_min, target_max = RESCALE_TARGETS[normalization]
        return [
            {
                "type": "rescale",
                "min": to_host_array(layer.min),
                "max": to_host_array(layer.max),
                "target_min": target_min,
                "target_max": target_max,
            }
        ]
    transform = {"type": normalization, "mean": to_host_array(layer.mean)}
    if normalization == "zscore":
        transform["std"] = to_host_array(layer.std)
    return [transform]


def _load_transforms(record: LayerRecord) -> Dict[str, Any]:
    """Turn the stored transform list into layer constructor arguments."""
    transforms = record.require("normalization")
    if is_empty(transforms):
        return {"normalization": "none"}
    if isinstance(transforms, Mapping):
        transforms = [transforms]

    t = dict(transforms[0])
    kind = t.get("type")
    if kind == "custom":
        if "function" not in t:
            raise FormatError(
                "Custom transform has no function",
                layer_kind=record.layer_kind.value,
                schema_version=record.schema_version,
                field="normalization",
            )
        return {"normalization": t["function"]}
    if kind == "rescale":
        target = (float(t.get("target_min", 0.0)), float(t.get("target_max", 1.0)))
        for name, rng in RESCALE_TARGETS.items():
            if rng == target:
                return {"normalization": name, "min": t.get("min"), "max": t.get("max")}
        raise FormatError(
            f"Unsupported rescale target range {target}",
            layer_kind=record.layer_kind.value,
            schema_version=record.schema_version,
            field="normalization",
        )
    if kind in ("zerocenter", "zscore"):
        args = {"normalization": kind, "mean": t.get("mean")}
        if kind == "zscore":
            args["std"] = t.get("std")
        return args
    raise FormatError(
        f"Unknown normalization transform {kind!r}",
        layer_kind=record.layer_kind.value,
        schema_version=record.schema_version,
        field="normalization",
    )


def encode(layer: SequenceInputLayer):
    input_size = layer.input_size
    return {
        "name": layer.name,
        "input_size": list(input_size) if isinstance(input_size, tuple) else input_size,
        "normalization": _save_transforms(layer),
        "normalization_dimension": layer.normalization_dimension,
        "min_length": layer.min_length,
        "split_complex_inputs": layer.split_complex_inputs,
    }


def build(record) -> SequenceInputLayer:
    return SequenceInputLayer(
        input_size=record.require("input_size"),
        normalization_dimension=record.require("normalization_dimension"),
        min_length=record.require("min_length"),
        split_complex_inputs=record.require("split_complex_inputs"),
        name=record.get("name", ""),
        **_load_transforms(record),
    )


SCHEMA = LayerSchema(
    kind=LayerKind.SEQUENCE_INPUT,
    upgrades=(
        _add_normalization,
        _add_normalization_dimension,
        _add_min_length,
        _add_split_complex_inputs,
    ),
    required_fields=(
        "input_size",
        "normalization",
        "normalization_dimension",
        "min_length",
        "split_complex_inputs",
    ),
    encode=encode,
    build=build,
)
