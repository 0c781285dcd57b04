"""
Tests for VersionedLayerStore: decode of every older version converges
on the current layout, encode/decode round trips exactly, and records a
newer release wrote are refused.
"""

import numpy as np
import pytest
import torch

from stagenet.errors import FormatError, ValidationError
from stagenet.layers.classification_layer import ClassificationLayer
from stagenet.layers.dropout_layer import DropoutLayer
from stagenet.layers.fully_connected_layer import FullyConnectedLayer
from stagenet.layers.lstm_layer import LSTMLayer
from stagenet.layers.sequence_input_layer import SequenceInputLayer
from stagenet.layers.softmax_layer import SoftmaxLayer
from stagenet.schema.layer_record import LayerKind, LayerRecord
from stagenet.schema.learnable import BuiltinInitializer
from stagenet.store.versioned_store import VersionedLayerStore


@pytest.fixture
def store():
    return VersionedLayerStore()


def learnable(value, lr=1.0, l2=1.0):
    return {"value": value, "learn_rate_factor": lr, "regularization_factor": l2}


def fc_weights():
    return np.arange(6, dtype=np.float32).reshape(3, 2) / 10, np.array([0.1, 0.2, 0.3], np.float32)


def lstm_weights(hidden=2, inputs=3):
    gates = 4 * hidden
    rng = np.random.default_rng(0)
    return (
        rng.normal(size=(gates, inputs)).astype(np.float32),
        rng.normal(size=(gates, hidden)).astype(np.float32),
        rng.normal(size=gates).astype(np.float32),
    )


# Current versions


class TestCurrentVersion:

    @pytest.mark.parametrize(
        "kind, version",
        [
            (LayerKind.SOFTMAX, 4),
            (LayerKind.FULLY_CONNECTED, 3),
            (LayerKind.SEQUENCE_INPUT, 5),
            (LayerKind.LSTM, 5),
            (LayerKind.DROPOUT, 1),
            (LayerKind.CLASSIFICATION, 1),
        ],
    )
    def test_current_version(self, store, kind, version):
        assert store.current_version(kind) == version
        assert store.current_version(kind.value) == version

    def test_encode_tags_current_version(self, store):
        rec = store.encode(DropoutLayer(0.3, name="drop"))
        assert rec.schema_version == 1
        assert rec.layer_kind is LayerKind.DROPOUT
        assert rec.fields == {"name": "drop", "probability": 0.3}


# Concrete scenarios


class TestScenarios:

    def test_softmax_v1_without_fields(self, store):
        rec = store.upgrade(LayerRecord(1, "Softmax", {}))
        assert rec.schema_version == 4
        assert rec.fields["vector_format"] is False
        assert rec.fields["channel_dim"] == 3

        layer = store.decode(LayerRecord(1, "Softmax", {}))
        assert isinstance(layer, SoftmaxLayer)
        assert layer.channel_dim == 3
        assert layer.name == ""

    def test_lstm_v3_gets_state_flags(self, store):
        w_in, w_rec, b = lstm_weights()
        fields = {
            "name": "lstm",
            "input_size": 3,
            "num_hidden_units": 2,
            "return_sequence": True,
            "input_weights": learnable(w_in),
            "recurrent_weights": learnable(w_rec),
            "bias": learnable(b, l2=0.0),
            "cell_state": {"value": np.zeros(2, np.float32)},
            "hidden_state": {"value": np.zeros(2, np.float32)},
            "state_activation_function": "tanh",
            "gate_activation_function": "sigmoid",
        }
        rec = store.upgrade(LayerRecord(3, LayerKind.LSTM, fields))
        assert rec.schema_version == 5
        assert rec.fields["has_state_inputs"] is False
        assert rec.fields["has_state_outputs"] is False
        np.testing.assert_array_equal(rec.fields["input_weights"]["value"], w_in)
        np.testing.assert_array_equal(rec.fields["recurrent_weights"]["value"], w_rec)
        np.testing.assert_array_equal(rec.fields["bias"]["value"], b)

        layer = store.decode(LayerRecord(3, LayerKind.LSTM, fields))
        assert layer.has_state_inputs is False
        np.testing.assert_array_equal(layer.input_weights, w_in)
        assert layer.bias_initializer == BuiltinInitializer("unit-forget-gate", ("LSTM",))

    def test_sequence_input_v2_gets_min_length(self, store):
        rec = LayerRecord(2, LayerKind.SEQUENCE_INPUT, {"input_size": 12, "normalization": []})
        up = store.upgrade(rec)
        assert up.schema_version == 5
        assert up.fields["min_length"] == 1
        assert up.fields["split_complex_inputs"] is False
        assert up.fields["normalization_dimension"] == "auto"

        layer = store.decode(rec)
        assert layer.min_length == 1
        assert layer.split_complex_inputs is False
        assert layer.normalization == "none"


# Convergence: an old record decodes to the same layer as a fresh one


def same_learnables(a, b):
    for pa, pb in zip(a.learnables(), b.learnables()):
        np.testing.assert_array_equal(pa.host_value(), pb.host_value())
        assert pa.initializer == pb.initializer
        assert pa.learn_rate_factor == pb.learn_rate_factor
        assert pa.regularization_factor == pb.regularization_factor


class TestConvergence:

    @pytest.mark.parametrize("version", [1, 2, 3])
    def test_softmax(self, store, version):
        old = {1: {}, 2: {"vector_format": True}, 3: {"vector_format": True, "channel_dim": None}}
        layer = store.decode(LayerRecord(version, LayerKind.SOFTMAX, old[version]))
        fresh = store.decode(store.encode(SoftmaxLayer()))
        expected = 3 if version == 1 else fresh.channel_dim
        assert layer.channel_dim == expected

    @pytest.mark.parametrize("version", [1, 2, 3])
    def test_fully_connected(self, store, version):
        w, b = fc_weights()
        weights, bias = learnable(torch.from_numpy(w)), learnable(b, l2=0.0)
        if version == 3:
            weights = {**learnable(w), "initializer": BuiltinInitializer("narrow-normal").to_wire()}
            bias = {**bias, "initializer": BuiltinInitializer("zeros").to_wire()}
        old = LayerRecord(
            version,
            LayerKind.FULLY_CONNECTED,
            {"name": "fc", "input_size": 2, "output_size": 3, "weights": weights, "bias": bias},
        )
        fresh = FullyConnectedLayer(
            3, input_size=2, weights=w, bias=b, weights_initializer="narrow-normal", name="fc"
        )

        a = store.decode(old)
        b_ = store.decode(store.encode(fresh))
        assert (a.name, a.input_size, a.output_size) == (b_.name, b_.input_size, b_.output_size)
        same_learnables(a, b_)

    @pytest.mark.parametrize("version", [1, 2, 3, 4])
    def test_sequence_input(self, store, version):
        fields = {"name": "in", "input_size": 12}
        if version >= 2:
            fields["normalization"] = []
        if version >= 3:
            fields["normalization_dimension"] = "auto"
        if version >= 4:
            fields["min_length"] = 1
        a = store.decode(LayerRecord(version, LayerKind.SEQUENCE_INPUT, fields))
        b = store.decode(store.encode(SequenceInputLayer(12, name="in")))
        for attr in (
            "name",
            "input_size",
            "normalization",
            "normalization_dimension",
            "min_length",
            "split_complex_inputs",
        ):
            assert getattr(a, attr) == getattr(b, attr)

    def test_lstm_v1(self, store):
        w_in, w_rec, b = lstm_weights()
        old = {
            "name": "lstm",
            "input_size": 3,
            "output_size": 2,
            "return_sequence": False,
            "input_weights": learnable(w_in),
            "recurrent_weights": learnable(w_rec),
            "bias": learnable(b, l2=0.0),
            "cell_state": np.zeros(2, np.float32),
            "output_state": np.ones(2, np.float32),
        }
        fresh = LSTMLayer(
            2,
            output_mode="last",
            input_size=3,
            input_weights=w_in,
            recurrent_weights=w_rec,
            bias=b,
            input_weights_initializer="narrow-normal",
            recurrent_weights_initializer="narrow-normal",
            hidden_state=np.ones(2, np.float32),
            cell_state=np.zeros(2, np.float32),
            name="lstm",
        )

        a = store.decode(LayerRecord(1, LayerKind.LSTM, old))
        b_ = store.decode(store.encode(fresh))
        for attr in (
            "name",
            "input_size",
            "num_hidden_units",
            "output_mode",
            "state_activation_function",
            "gate_activation_function",
            "has_state_inputs",
            "has_state_outputs",
        ):
            assert getattr(a, attr) == getattr(b_, attr)
        same_learnables(a, b_)
        np.testing.assert_array_equal(a.hidden_state, b_.hidden_state)
        np.testing.assert_array_equal(a.cell_state, b_.cell_state)


# Round trip


class TestRoundTrip:

    def test_fully_connected_bit_exact(self, store):
        w, b = fc_weights()
        layer = FullyConnectedLayer(3, input_size=2, weights=w, bias=b, bias_l2_factor=0.5)
        out = store.decode(store.encode(layer))
        np.testing.assert_array_equal(out.weights, w)
        np.testing.assert_array_equal(out.bias, b)
        assert out.weights.dtype == w.dtype
        assert out.learnables()[1].regularization_factor == 0.5

    def test_fully_connected_image_output_size_collapses(self, store):
        w, b = fc_weights()
        rec = store.encode(FullyConnectedLayer(3, input_size=2, weights=w, bias=b))
        rec = rec.evolve(fields={**rec.fields, "output_size": [1, 1, 3], "input_size": None})
        out = store.decode(rec)
        assert out.output_size == 3
        assert out.input_size == 2

    def test_lstm_with_state_inputs(self, store):
        layer = LSTMLayer(4, has_state_inputs=True, has_state_outputs=True, input_size=3)
        layer.ensure_initialized()
        rec = store.encode(layer)
        assert rec.fields["cell_state"] is None
        assert rec.fields["hidden_state"] is None

        out = store.decode(rec)
        assert out.has_state_inputs and out.has_state_outputs
        assert out.hidden_state is None
        np.testing.assert_array_equal(out.input_weights, layer.input_weights)
        np.testing.assert_array_equal(out.recurrent_weights, layer.recurrent_weights)

    def test_lstm_initial_states(self, store):
        layer = LSTMLayer(2, input_size=3)
        layer.ensure_initialized()
        layer.initial_hidden_state = np.array([0.5, -0.5], np.float32)
        out = store.decode(store.encode(layer))
        np.testing.assert_array_equal(out.initial_hidden_state, layer.initial_hidden_state)
        assert out.initial_cell_state is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"normalization": "zerocenter", "mean": np.arange(4)},
            {"normalization": "zscore", "mean": np.zeros(4), "std": np.full(4, 2.0)},
            {"normalization": "rescale-symmetric", "min": -np.ones(4), "max": np.ones(4)},
            {"normalization": "rescale-zero-one", "min": np.zeros(1), "max": np.ones(1)},
            {"normalization": "math:sqrt"},
        ],
    )
    def test_sequence_input_normalizations(self, store, kwargs):
        layer = SequenceInputLayer(4, min_length=3, **kwargs)
        out = store.decode(store.encode(layer))
        assert out.normalization == layer.normalization
        assert out.min_length == 3
        for stat in layer.statistic_names():
            np.testing.assert_array_equal(getattr(out, stat), getattr(layer, stat))
            assert getattr(out, stat).dtype == np.float32

    def test_sequence_input_image_size(self, store):
        layer = SequenceInputLayer((8, 8, 3), normalization_dimension="channel")
        out = store.decode(store.encode(layer))
        assert out.input_size == (8, 8, 3)
        assert out.normalization_dimension == "channel"

    def test_classification(self, store):
        layer = ClassificationLayer(classes=["-1", "1"], class_weights=[1.0, 3.0])
        out = store.decode(store.encode(layer))
        assert out.classes == ["-1", "1"]
        np.testing.assert_array_equal(out.class_weights, [1.0, 3.0])

    def test_softmax_writes_vector_format(self, store):
        assert store.encode(SoftmaxLayer()).fields["vector_format"] is True
        assert store.encode(SoftmaxLayer(channel_dim=3)).fields["vector_format"] is False


# Idempotence, monotonicity, immutability


class TestUpgradeProperties:

    def test_current_record_is_returned_unchanged(self, store):
        rec = store.encode(SoftmaxLayer(name="sm"))
        assert store.upgrade(rec) is rec

    def test_upgrading_twice_changes_nothing(self, store):
        once = store.upgrade(LayerRecord(1, LayerKind.SEQUENCE_INPUT, {"input_size": 3}))
        twice = store.upgrade(once)
        assert twice is once

    @pytest.mark.parametrize("version", [1, 2, 3])
    def test_version_reaches_current(self, store, version):
        rec = store.upgrade(
            LayerRecord(version, LayerKind.SOFTMAX, {"vector_format": False, "channel_dim": 3})
        )
        assert rec.schema_version == store.current_version(LayerKind.SOFTMAX)

    def test_input_record_is_not_mutated(self, store):
        rec = LayerRecord(1, LayerKind.SOFTMAX, {"name": "sm"})
        store.decode(rec)
        assert rec.schema_version == 1
        assert dict(rec.fields) == {"name": "sm"}

    def test_nested_fields_are_read_only(self, store):
        w, b = fc_weights()
        rec = store.encode(FullyConnectedLayer(3, input_size=2, weights=w, bias=b))
        with pytest.raises(TypeError):
            rec.fields["weights"]["value"] = None
        with pytest.raises(TypeError):
            rec.fields["weights"]["initializer"]["name"] = "zeros"

    def test_transform_mappings_are_read_only(self, store):
        rec = store.encode(SequenceInputLayer(3, normalization="zerocenter", mean=np.zeros(3)))
        with pytest.raises(TypeError):
            rec.fields["normalization"][0]["type"] = "zscore"


# Errors


class TestDecodeErrors:

    def test_newer_version_is_refused(self, store):
        with pytest.raises(FormatError) as exc:
            store.decode(LayerRecord(5, LayerKind.SOFTMAX, {"channel_dim": 1}))
        assert exc.value.schema_version == 5
        assert exc.value.layer_kind == "Softmax"

    @pytest.mark.parametrize("version", [0, -1, 2.5, "2", True])
    def test_bad_version_is_refused(self, store, version):
        with pytest.raises(FormatError):
            store.upgrade(LayerRecord(version, LayerKind.SOFTMAX, {}))

    def test_unknown_kind(self):
        with pytest.raises(FormatError):
            LayerRecord(1, "Convolution2D", {})

    def test_missing_field_after_chain(self, store):
        with pytest.raises(FormatError) as exc:
            store.decode(LayerRecord(1, LayerKind.DROPOUT, {"name": "d"}))
        assert exc.value.field == "probability"

    def test_invalid_value_is_validation_error(self, store):
        with pytest.raises(ValidationError) as exc:
            store.decode(LayerRecord(1, LayerKind.DROPOUT, {"probability": 1.5}))
        assert exc.value.field == "probability"

    def test_malformed_learnable(self, store):
        w, b = fc_weights()
        rec = store.encode(FullyConnectedLayer(3, input_size=2, weights=w, bias=b))
        bad = dict(rec.fields["weights"])
        del bad["initializer"]
        with pytest.raises(FormatError) as exc:
            store.decode(rec.evolve(fields={**rec.fields, "weights": bad}))
        assert exc.value.field == "weights"

    @pytest.mark.parametrize("channel_dim", ["x", None, 0])
    def test_bad_softmax_channel_dim(self, store, channel_dim):
        with pytest.raises(ValidationError) as exc:
            store.decode(LayerRecord(4, LayerKind.SOFTMAX, {"channel_dim": channel_dim}))
        assert exc.value.field == "channel_dim"

    def test_custom_transform_without_function(self, store):
        rec = store.encode(SequenceInputLayer(3))
        rec = rec.evolve(fields={**rec.fields, "normalization": [{"type": "custom"}]})
        with pytest.raises(FormatError) as exc:
            store.decode(rec)
        assert exc.value.field == "normalization"

    def test_malformed_transform_list(self, store):
        rec = store.encode(SequenceInputLayer(3))
        rec = rec.evolve(fields={**rec.fields, "normalization": [42]})
        with pytest.raises(FormatError) as exc:
            store.decode(rec)
        assert exc.value.layer_kind == "SequenceInput"
        assert exc.value.schema_version == rec.schema_version

    @pytest.mark.parametrize("initializer", [None, "glorot", {"kind": "custom"}])
    def test_malformed_initializer(self, store, initializer):
        w, b = fc_weights()
        rec = store.encode(FullyConnectedLayer(3, input_size=2, weights=w, bias=b))
        bad = {**rec.fields["weights"], "initializer": initializer}
        with pytest.raises(FormatError) as exc:
            store.decode(rec.evolve(fields={**rec.fields, "weights": bad}))
        assert exc.value.field == "weights"
