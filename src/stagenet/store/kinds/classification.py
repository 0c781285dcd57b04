from stagenet.layers.classification_layer import ClassificationLayer
from stagenet.schema.layer_record import LayerKind
from stagenet.schema.wire import to_host_array
from stagenet.store.registry import LayerSchema


def encode(layer: ClassificationLayer):
    weights = layer.class_weights
    return {
        "name": layer.name,
        "classes": layer.classes if isinstance(layer.classes, str) else list(layer.classes),
        "class_weights": weights if isinstance(weights, str) else to_host_array(weights),
    }


def build(record) -> ClassificationLayer:
    return ClassificationLayer(
        classes=record.require("classes"),
        class_weights=record.require("class_weights"),
        name=record.get("name", ""),
    )


SCHEMA = LayerSchema(
    kind=LayerKind.CLASSIFICATION,
    upgrades=(),
    required_fields=("classes", "class_weights"),
    encode=encode,
    build=build,
)
