from stagenet.layers.dropout_layer import DropoutLayer
from stagenet.schema.layer_record import LayerKind
from stagenet.store.registry import LayerSchema


def encode(layer: DropoutLayer):
    return {"name": layer.name, "probability": layer.probability}


def build(record) -> DropoutLayer:
    return DropoutLayer(probability=record.require("probability"), name=record.get("name", ""))


SCHEMA = LayerSchema(
    kind=LayerKind.DROPOUT,
    upgrades=(),
    required_fields=("probability",),
    encode=encode,
    build=build,
)
