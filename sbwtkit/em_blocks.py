"""Blocks of binary records and the producer, consumer, reader and writer pieces of external sorting.

Two record kinds are supported. Constant records all have the same byte length.
Variable records start with an 8-byte big-endian integer L giving the length of
the whole record, so the record is those 8 bytes followed by L - 8 bytes of payload.
"""

from __future__ import annotations

import os
import queue
import struct
from typing import BinaryIO, Callable, Iterable, Iterator

from sbwtkit.common import LogLevel, write_log
from sbwtkit.tempfiles import TempFileManager, get_temp_file_manager

_LL = struct.Struct(">q")
_LENGTH_BYTES = _LL.size
_OFFSET_BYTES = 8  # bookkeeping cost of one record in a block's size estimate

SortKey = Callable[[bytes], object]


def parse_big_endian_ll(data: bytes) -> int:
    """Decode the 8-byte big-endian signed integer at the start of data."""
    if len(data) < _LENGTH_BYTES:
        raise ValueError(f"need {_LENGTH_BYTES} bytes for a length field, got {len(data)}")
    return _LL.unpack_from(data)[0]


def write_big_endian_ll(out: BinaryIO, value: int) -> int:
    """Write value as an 8-byte big-endian signed integer; return the bytes written."""
    out.write(_LL.pack(value))
    return _LENGTH_BYTES


def read_variable_binary_record(stream: BinaryIO) -> bytes | None:
    """Read one whole variable-length record, length field included; None at end of input."""
    head = stream.read(_LENGTH_BYTES)
    if not head:
        return None
    if len(head) < _LENGTH_BYTES:
        raise ValueError("truncated record length field")
    length = parse_big_endian_ll(head)
    if length < _LENGTH_BYTES:
        raise ValueError(f"invalid record length {length}")
    payload = stream.read(length - _LENGTH_BYTES)
    if len(payload) != length - _LENGTH_BYTES:
        raise ValueError("truncated record payload")
    return head + payload


class _Block:
    """Records held in memory in the order they are to be written."""

    def __init__(self) -> None:
        self.records: list[bytes] = []
        self._data_bytes = 0

    def _append(self, record: bytes) -> None:
        self.records.append(record)
        self._data_bytes += len(record)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self.records)

    def sort(self, key: SortKey | None = None) -> None:
        """Sort the records by key (by raw bytes if no key is given)."""
        self.records.sort(key=key)

    def write_to_file(self, filename: str | os.PathLike) -> None:
        """Write the records, in their current order, to a file."""
        with open(filename, "wb") as out:
            out.writelines(self.records)

    def estimate_size_in_bytes(self) -> int:
        """Approximate memory used: record bytes plus per-record bookkeeping."""
        return self._data_bytes + _OFFSET_BYTES * len(self.records)


class VariableBinaryBlock(_Block):
    """Block of records whose length is given by their first 8 bytes."""

    def add_record(self, record: bytes) -> None:
        """Append a record; bytes past its declared length are ignored."""
        length = parse_big_endian_ll(record)
        if length < _LENGTH_BYTES or len(record) < length:
            raise ValueError(f"invalid record length {length} for {len(record)} bytes")
        self._append(bytes(record[:length]))

    def sort(self, key: SortKey | None = None) -> None:
        """Sort the records by key (by raw bytes if no key is given)."""
        super().sort(key)

    def write_to_file(self, filename: str | os.PathLike) -> None:
        """Write the records, in their current order, to a file."""
        super().write_to_file(filename)

    def estimate_size_in_bytes(self) -> int:
        """Approximate memory used: record bytes plus per-record bookkeeping."""
        return super().estimate_size_in_bytes()


class ConstantBinaryBlock(_Block):
    """Block of records of exactly record_size bytes each."""

    def __init__(self, record_size: int) -> None:
        if record_size <= 0:
            raise ValueError(f"record size must be positive, got {record_size}")
        super().__init__()
        self.record_size = record_size

    def add_record(self, record: bytes) -> None:
        """Append the first record_size bytes of record."""
        if len(record) < self.record_size:
            raise ValueError(f"record of {len(record)} bytes is shorter than {self.record_size}")
        self._append(bytes(record[:self.record_size]))

    def sort(self, key: SortKey | None = None) -> None:
        """Sort the records by key (by raw bytes if no key is given)."""
        super().sort(key)

    def write_to_file(self, filename: str | os.PathLike) -> None:
        """Write the records, in their current order, to a file."""
        super().write_to_file(filename)

    def estimate_size_in_bytes(self) -> int:
        """Approximate memory used: record bytes plus per-record bookkeeping."""
        return super().estimate_size_in_bytes()


def get_next_variable_binary_block(stream: BinaryIO, max_bytes: int) -> VariableBinaryBlock:
    """Read variable records into a block until it holds about max_bytes; empty at end of input."""
    block = VariableBinaryBlock()
    while block.estimate_size_in_bytes() <= max_bytes:
        record = read_variable_binary_record(stream)
        if record is None:
            break
        block.add_record(record)
    return block


def _read_constant_record(stream: BinaryIO, record_size: int) -> bytes | None:
    data = stream.read(record_size)
    return data if len(data) == record_size else None


def get_next_constant_binary_block(stream: BinaryIO, max_bytes: int, record_size: int) -> ConstantBinaryBlock:
    """Read constant records into a block until it holds about max_bytes; empty at end of input."""
    block = ConstantBinaryBlock(record_size)
    while block.estimate_size_in_bytes() <= max_bytes:
        record = _read_constant_record(stream, record_size)
        if record is None:
            break
        block.add_record(record)
    return block


class BlockConsumer:
    """Takes blocks from a queue, sorts each and writes it to its own temporary file.

    A None in the queue means no more work; it is put back for the other consumers.
    """

    def __init__(self, thread_id: int, temp_files: TempFileManager | None = None) -> None:
        self.thread_id = thread_id
        self.filenames: list[str] = []
        self._temp_files = temp_files

    def run(self, queue: queue.Queue, key: SortKey | None = None) -> None:
        """Consume blocks until the end marker is seen."""
        temp_files = self._temp_files or get_temp_file_manager()
        while True:
            block = queue.get()
            if block is None:
                queue.put(None)
                break
            write_log(f"Thread {self.thread_id}: Starting to sort a block.", LogLevel.MINOR)
            block.sort(key)
            write_log(f"Thread {self.thread_id}: Finished sorting a block.", LogLevel.MINOR)
            filename = temp_files.create_filename()
            self.filenames.append(filename)
            block.write_to_file(filename)


class _BlockProducer:
    def __init__(self, infile: str | os.PathLike) -> None:
        self._in = open(infile, "rb")

    def _next_block(self, block_size: int) -> _Block:
        raise NotImplementedError

    def run(self, queue: queue.Queue, block_size: int) -> None:
        """Split the input into blocks of about block_size bytes, then put the end marker."""
        try:
            while True:
                block = self._next_block(block_size)
                if not block:
                    queue.put(None)
                    break
                queue.put(block)
        finally:
            self.close()

    def close(self) -> None:
        """Close the input file."""
        self._in.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ConstantBlockProducer(_BlockProducer):
    """Reads a file of constant-size records and puts blocks of them on a queue."""

    def __init__(self, infile: str | os.PathLike, record_size: int) -> None:
        if record_size <= 0:
            raise ValueError(f"record size must be positive, got {record_size}")
        super().__init__(infile)
        self.record_size = record_size

    def _next_block(self, block_size: int) -> ConstantBinaryBlock:
        return get_next_constant_binary_block(self._in, block_size, self.record_size)

    def run(self, queue: queue.Queue, block_size: int) -> None:
        """Split the input into blocks of about block_size bytes, then put the end marker."""
        super().run(queue, block_size)


class VariableBlockProducer(_BlockProducer):
    """Reads a file of variable-length records and puts blocks of them on a queue."""

    def _next_block(self, block_size: int) -> VariableBinaryBlock:
        return get_next_variable_binary_block(self._in, block_size)

    def run(self, queue: queue.Queue, block_size: int) -> None:
        """Split the input into blocks of about block_size bytes, then put the end marker."""
        super().run(queue, block_size)


class _RecordReader:
    def __init__(self) -> None:
        self.inputs: list[BinaryIO] = []

    def open_files(self, filenames: Iterable[str | os.PathLike]) -> None:
        """Open the given files for reading, replacing any open ones."""
        self.close_files()
        for name in filenames:
            try:
                self.inputs.append(open(name, "rb"))
            except OSError:
                self.close_files()
                raise

    def close_files(self) -> None:
        """Close all open input files."""
        for stream in self.inputs:
            stream.close()
        self.inputs = []

    @property
    def num_files(self) -> int:
        """Number of open input files."""
        return len(self.inputs)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close_files()


class ConstantRecordReader(_RecordReader):
    """Reads constant-size records from several files."""

    def __init__(self, record_size: int) -> None:
        if record_size <= 0:
            raise ValueError(f"record size must be positive, got {record_size}")
        super().__init__()
        self.record_size = record_size

    def open_files(self, filenames: Iterable[str | os.PathLike]) -> None:
        """Open the given files for reading, replacing any open ones."""
        super().open_files(filenames)

    def close_files(self) -> None:
        """Close all open input files."""
        super().close_files()

    def read_record(self, index: int) -> bytes | None:
        """Next record from file number index, or None when that file is exhausted."""
        return _read_constant_record(self.inputs[index], self.record_size)


class VariableRecordReader(_RecordReader):
    """Reads variable-length records from several files."""

    def open_files(self, filenames: Iterable[str | os.PathLike]) -> None:
        """Open the given files for reading, replacing any open ones."""
        super().open_files(filenames)

    def close_files(self) -> None:
        """Close all open input files."""
        super().close_files()

    def read_record(self, index: int) -> bytes | None:
        """Next record from file number index, or None when that file is exhausted."""
        return read_variable_binary_record(self.inputs[index])


class _RecordWriter:
    def __init__(self) -> None:
        self._out: BinaryIO | None = None

    def open_file(self, filename: str | os.PathLike) -> None:
        """Open the output file, closing any previous one."""
        self.close_file()
        self._out = open(filename, "wb")

    def close_file(self) -> None:
        """Flush and close the output file."""
        if self._out is not None:
            self._out.close()
            self._out = None

    def _output(self) -> BinaryIO:
        if self._out is None:
            raise ValueError("no output file is open")
        return self._out

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close_file()


class ConstantRecordWriter(_RecordWriter):
    """Writes constant-size records to a file."""

    def __init__(self, record_size: int) -> None:
        if record_size <= 0:
            raise ValueError(f"record size must be positive, got {record_size}")
        super().__init__()
        self.record_size = record_size

    def open_file(self, filename: str | os.PathLike) -> None:
        """Open the output file, closing any previous one."""
        super().open_file(filename)

    def close_file(self) -> None:
        """Flush and close the output file."""
        super().close_file()

    def write(self, record: bytes) -> None:
        """Write the first record_size bytes of record."""
        if len(record) < self.record_size:
            raise ValueError(f"record of {len(record)} bytes is shorter than {self.record_size}")
        self._output().write(record[:self.record_size])


class VariableRecordWriter(_RecordWriter):
    """Writes variable-length records to a file."""

    def open_file(self, filename: str | os.PathLike) -> None:
        """Open the output file, closing any previous one."""
        super().open_file(filename)

    def close_file(self) -> None:
        """Flush and close the output file."""
        super().close_file()

    def write(self, record: bytes) -> None:
        """Write the record up to the length given in its first 8 bytes."""
        length = parse_big_endian_ll(record)
        if length < _LENGTH_BYTES or len(record) < length:
            raise ValueError(f"invalid record length {length} for {len(record)} bytes")
        self._output().write(record[:length])