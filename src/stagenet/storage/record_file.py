"""
Layer record files.

A record file is a sequence of length-prefixed msgpack frames: a 4-byte
big-endian payload length (`!I`) followed by the msgpack encoding of
`LayerRecord.to_wire()`. Appending to an existing file adds frames, so
a layer array can be written incrementally.
"""

import struct
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Union

import msgspec

from stagenet.errors import FormatError
from stagenet.schema.layer_record import LayerRecord
from stagenet.store.versioned_store import VersionedLayerStore

_HEADER = struct.Struct("!I")

PathLike = Union[str, Path]


class RecordFileWriter:
    """
    Appends layer records to a framed msgpack file.
    Keeps track of how many records it has written.
    """

    def __init__(self, path: PathLike):
        self.path = Path(path)
        self._encoder = msgspec.msgpack.Encoder()
        self.records_written = 0

    def write(self, records: Iterable[LayerRecord]) -> int:
        """Append records and return how many were written."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        count = 0
        with open(self.path, "ab") as f:
            for r in records:
                payload = self._encoder.encode(r.to_wire())
                f.write(_HEADER.pack(len(payload)))
                f.write(payload)
                count += 1
        self.records_written += count
        return count


def read_records(path: PathLike) -> Iterator[LayerRecord]:
    """Yield the records of a framed msgpack file in order."""
    decoder = msgspec.msgpack.Decoder()
    with open(path, "rb") as f:
        index = 0
        while True:
            header = f.read(_HEADER.size)
            if not header:
                break
            if len(header) != _HEADER.size:
                raise FormatError(f"Truncated header in record #{index} of {path}")
            (length,) = _HEADER.unpack(header)
            payload = f.read(length)
            if len(payload) != length:
                raise FormatError(
                    f"Truncated payload in record #{index} of {path}: "
                    f"expected {length} bytes, got {len(payload)}"
                )
            try:
                data = decoder.decode(payload)
            except msgspec.DecodeError as e:
                raise FormatError(f"Corrupt record #{index} in {path}: {e}") from e
            yield LayerRecord.from_wire(data)
            index += 1


def save_layers(
    path: PathLike,
    layers: Iterable[Any],
    store: Optional[VersionedLayerStore] = None,
) -> int:
    """Encode layers and write them to a new record file."""
    store = store or VersionedLayerStore()
    records = [store.encode(layer) for layer in layers]
    path = Path(path)
    if path.exists():
        path.unlink()
    return RecordFileWriter(path).write(records)


def load_layers(path: PathLike, store: Optional[VersionedLayerStore] = None) -> List[Any]:
    """Read every record of a file and decode it into a live layer."""
    store = store or VersionedLayerStore()
    return [store.decode(r) for r in read_records(path)]
