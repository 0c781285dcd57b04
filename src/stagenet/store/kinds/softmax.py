"""
Softmax records.

v1  name
v2  + vector_format
v3  + channel_dim (3 for image data, unset for vector data)
v4  channel_dim always set; vector_format kept for older readers
"""

from stagenet.layers.softmax_layer import SoftmaxLayer
from stagenet.schema.layer_record import LayerKind
from stagenet.store.kinds.common import is_empty
from stagenet.store.registry import LayerSchema
from stagenet.store.upgrade import step


@step(1)
def _add_vector_format(record):
    """Add vector_format, false for records written before it existed."""
    return {**record.fields, "vector_format": False}


@step(2)
def _add_channel_dim(record):
    """Add channel_dim; only 4-D image data was supported before it."""
    vector_format = bool(record.require("vector_format"))
    return {**record.fields, "channel_dim": None if vector_format else 3}


@step(3)
def _fill_channel_dim(record):
    """Replace an unset channel_dim (vector data) with 1."""
    fields = dict(record.fields)
    if bool(record.require("vector_format")) or is_empty(record.require("channel_dim")):
        fields["channel_dim"] = 1
    return fields


def encode(layer: SoftmaxLayer):
    return {
        "name": layer.name,
        "channel_dim": layer.channel_dim,
        "vector_format": layer.channel_dim == 1,
    }


def build(record) -> SoftmaxLayer:
    return SoftmaxLayer(name=record.get("name", ""), channel_dim=record.require("channel_dim"))


SCHEMA = LayerSchema(
    kind=LayerKind.SOFTMAX,
    upgrades=(_add_vector_format, _add_channel_dim, _fill_channel_dim),
    required_fields=("channel_dim",),
    encode=encode,
    build=build,
)
