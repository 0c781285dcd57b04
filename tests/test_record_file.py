"""
Test record files: RecordFileWriter -> read_records.

Verifies that records written with length-prefix framing can be read
back, that older record versions in a file still load, and that a
truncated file is reported instead of silently ending early.
"""

import struct

import msgspec
import numpy as np
import pytest

from stagenet.errors import FormatError
from stagenet.layers.dropout_layer import DropoutLayer
from stagenet.layers.fully_connected_layer import FullyConnectedLayer
from stagenet.layers.lstm_layer import LSTMLayer
from stagenet.layers.sequence_input_layer import SequenceInputLayer
from stagenet.layers.softmax_layer import SoftmaxLayer
from stagenet.schema.layer_record import LayerKind, LayerRecord
from stagenet.storage.record_file import (
    RecordFileWriter,
    load_layers,
    read_records,
    save_layers,
)


class TestRecordFile:

    def test_single_record(self, tmp_path):
        path = tmp_path / "layers.msgpack"
        original = LayerRecord(1, LayerKind.DROPOUT, {"name": "d", "probability": 0.5})

        RecordFileWriter(path).write([original])
        result = list(read_records(path))

        assert len(result) == 1
        assert result[0] == original

    def test_incremental_append(self, tmp_path):
        """Multiple write() calls append to the same file."""
        path = tmp_path / "layers.msgpack"
        writer = RecordFileWriter(path)

        writer.write([LayerRecord(1, LayerKind.DROPOUT, {"probability": 0.1})])
        writer.write(
            [
                LayerRecord(1, LayerKind.DROPOUT, {"probability": 0.2}),
                LayerRecord(4, LayerKind.SOFTMAX, {"channel_dim": 1}),
            ]
        )

        result = list(read_records(path))
        assert writer.records_written == 3
        assert [r.layer_kind for r in result] == [
            LayerKind.DROPOUT,
            LayerKind.DROPOUT,
            LayerKind.SOFTMAX,
        ]
        assert result[1].fields["probability"] == 0.2

    def test_frame_layout(self, tmp_path):
        path = tmp_path / "layers.msgpack"
        rec = LayerRecord(1, LayerKind.DROPOUT, {"probability": 0.5})
        RecordFileWriter(path).write([rec])

        data = path.read_bytes()
        length = struct.unpack("!I", data[:4])[0]
        assert length == len(data) - 4
        assert msgspec.msgpack.decode(data[4:]) == rec.to_wire()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.msgpack"
        path.write_bytes(b"")
        assert list(read_records(path)) == []

    def test_truncated_payload(self, tmp_path):
        path = tmp_path / "layers.msgpack"
        RecordFileWriter(path).write([LayerRecord(1, LayerKind.DROPOUT, {"probability": 0.5})])
        path.write_bytes(path.read_bytes()[:-3])

        with pytest.raises(FormatError, match="Truncated payload"):
            list(read_records(path))

    def test_truncated_header(self, tmp_path):
        path = tmp_path / "layers.msgpack"
        RecordFileWriter(path).write([LayerRecord(1, LayerKind.DROPOUT, {"probability": 0.5})])
        with open(path, "ab") as f:
            f.write(b"\x00\x00")

        records = read_records(path)
        assert next(records).fields["probability"] == 0.5
        with pytest.raises(FormatError, match="Truncated header"):
            next(records)


class TestSaveLoadLayers:

    def test_layer_array_roundtrip(self, tmp_path):
        path = tmp_path / "net.msgpack"
        fc = FullyConnectedLayer(2, input_size=4, name="fc")
        fc.ensure_initialized()
        lstm = LSTMLayer(4, output_mode="last", input_size=3, name="lstm")
        lstm.ensure_initialized()
        layers = [
            SequenceInputLayer(3, normalization="zerocenter", mean=[0.5, 1.0, 1.5]),
            lstm,
            DropoutLayer(0.2),
            fc,
            SoftmaxLayer(),
        ]

        assert save_layers(path, layers) == 5
        restored = load_layers(path)

        assert [type(l) for l in restored] == [type(l) for l in layers]
        np.testing.assert_array_equal(restored[0].mean, np.float32([0.5, 1.0, 1.5]))
        np.testing.assert_array_equal(restored[1].input_weights, lstm.input_weights)
        np.testing.assert_array_equal(restored[1].bias, lstm.bias)
        assert restored[1].output_mode == "last"
        np.testing.assert_array_equal(restored[3].weights, fc.weights)
        assert restored[2].probability == 0.2

    def test_save_overwrites(self, tmp_path):
        path = tmp_path / "net.msgpack"
        save_layers(path, [DropoutLayer(0.1), DropoutLayer(0.2)])
        save_layers(path, [DropoutLayer(0.3)])
        assert [l.probability for l in load_layers(path)] == [0.3]

    def test_old_records_load(self, tmp_path):
        path = tmp_path / "old.msgpack"
        RecordFileWriter(path).write(
            [
                LayerRecord(1, LayerKind.SOFTMAX, {}),
                LayerRecord(2, LayerKind.SEQUENCE_INPUT, {"input_size": 5, "normalization": []}),
            ]
        )
        softmax, seq = load_layers(path)
        assert softmax.channel_dim == 3
        assert seq.min_length == 1
        assert seq.input_size == 5
