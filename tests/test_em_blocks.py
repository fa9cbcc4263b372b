import heapq
import io
import queue
import random
import threading

import pytest

from sbwtkit.em_blocks import (
    BlockConsumer,
    ConstantBinaryBlock,
    ConstantBlockProducer,
    ConstantRecordReader,
    ConstantRecordWriter,
    VariableBinaryBlock,
    VariableBlockProducer,
    VariableRecordReader,
    VariableRecordWriter,
    get_next_constant_binary_block,
    get_next_variable_binary_block,
    parse_big_endian_ll,
    read_variable_binary_record,
    write_big_endian_ll,
)
from sbwtkit.tempfiles import TempFileManager


@pytest.fixture
def temp_files(tmp_path):
    manager = TempFileManager()
    manager.set_dir(str(tmp_path))
    yield manager
    manager.delete_all_files()


def _variable_records(rng, max_record_len, n_records):
    records = []
    for _ in range(n_records):
        length = max(8, rng.randrange(max_record_len + 1))
        buf = io.BytesIO()
        write_big_endian_ll(buf, length)
        buf.write(bytes(rng.randrange(256) for _ in range(length - 8)))
        records.append(buf.getvalue())
    return records


def _constant_records(rng, record_len, n_records):
    return [bytes(rng.randrange(256) for _ in range(record_len)) for _ in range(n_records)]


def _write(path, records):
    path.write_bytes(b"".join(records))
    return str(path)


def _payload(record):
    return record[8:]


def _merged(reader, key):
    def stream(i):
        while (rec := reader.read_record(i)) is not None:
            yield rec

    return list(heapq.merge(*(stream(i) for i in range(reader.num_files)), key=key))


def _run_pipeline(producer, consumers, block_size, key):
    q = queue.Queue()
    threads = [threading.Thread(target=c.run, args=(q, key)) for c in consumers]
    for t in threads:
        t.start()
    producer.run(q, block_size)
    for t in threads:
        t.join()
    return [name for c in consumers for name in c.filenames]


def test_big_endian_pinned_value():
    buf = io.BytesIO()
    assert write_big_endian_ll(buf, 258) == 8
    assert buf.getvalue() == b"\x00\x00\x00\x00\x00\x00\x01\x02"
    assert parse_big_endian_ll(buf.getvalue()) == 258


@pytest.mark.parametrize("value", [0, 8, 1 << 40, -1, (1 << 63) - 1])
def test_big_endian_round_trip(value):
    buf = io.BytesIO()
    write_big_endian_ll(buf, value)
    assert parse_big_endian_ll(buf.getvalue() + b"extra") == value


def test_parse_short_input_raises():
    with pytest.raises(ValueError):
        parse_big_endian_ll(b"\x00\x01")


def test_read_variable_records_until_end():
    records = _variable_records(random.Random(1), 40, 10)
    stream = io.BytesIO(b"".join(records))
    got = []
    while (rec := read_variable_binary_record(stream)) is not None:
        got.append(rec)
    assert got == records


def test_read_variable_record_truncated_payload():
    buf = io.BytesIO()
    write_big_endian_ll(buf, 20)
    buf.write(b"abc")
    buf.seek(0)
    with pytest.raises(ValueError):
        read_variable_binary_record(buf)


def test_read_variable_record_invalid_length():
    buf = io.BytesIO()
    write_big_endian_ll(buf, 3)
    buf.seek(0)
    with pytest.raises(ValueError):
        read_variable_binary_record(buf)


def test_variable_block_add_record_too_short_raises():
    block = VariableBinaryBlock()
    buf = io.BytesIO()
    write_big_endian_ll(buf, 16)
    with pytest.raises(ValueError):
        block.add_record(buf.getvalue() + b"ab")


def test_variable_block_ignores_bytes_past_length():
    block = VariableBinaryBlock()
    rec = _variable_records(random.Random(2), 20, 1)[0]
    block.add_record(rec + b"trailing")
    assert block.records == [rec]
    assert block.estimate_size_in_bytes() == len(rec) + 8


def test_constant_block_add_record_too_short_raises():
    block = ConstantBinaryBlock(4)
    with pytest.raises(ValueError):
        block.add_record(b"abc")


@pytest.mark.parametrize("max_len,n", [(8, 1), (16, 50), (64, 100), (512, 20)])
def test_variable_block_sort_and_write(tmp_path, max_len, n):
    records = _variable_records(random.Random(max_len * n), max_len, n)
    with open(_write(tmp_path / "in", records), "rb") as stream:
        block = get_next_variable_binary_block(stream, 10**16)
    assert len(block) == n
    block.sort(_payload)
    out = tmp_path / "out"
    block.write_to_file(out)
    assert out.read_bytes() == b"".join(sorted(records, key=_payload))


@pytest.mark.parametrize("record_len,n", [(1, 1), (1, 200), (4, 64), (32, 30)])
def test_constant_block_sort_and_write(tmp_path, record_len, n):
    records = _constant_records(random.Random(record_len * n), record_len, n)
    with open(_write(tmp_path / "in", records), "rb") as stream:
        block = get_next_constant_binary_block(stream, 10**16, record_len)
    block.sort()
    out = tmp_path / "out"
    block.write_to_file(out)
    assert out.read_bytes() == b"".join(sorted(records))


def test_constant_blocks_split_by_size(tmp_path):
    records = _constant_records(random.Random(3), 8, 100)
    blocks = []
    with open(_write(tmp_path / "in", records), "rb") as stream:
        while block := get_next_constant_binary_block(stream, 100, 8):
            blocks.append(block)
    assert len(blocks) > 1
    assert all(b.estimate_size_in_bytes() <= 100 + 16 for b in blocks)
    assert [r for b in blocks for r in b] == records


def test_constant_block_partial_trailing_record_dropped(tmp_path):
    path = tmp_path / "in"
    path.write_bytes(b"aaaabbbbcc")
    with open(path, "rb") as stream:
        block = get_next_constant_binary_block(stream, 10**6, 4)
    assert block.records == [b"aaaa", b"bbbb"]


def test_consumer_end_marker_is_put_back(temp_files):
    q = queue.Queue()
    q.put(None)
    consumer = BlockConsumer(0, temp_files)
    consumer.run(q, None)
    assert consumer.filenames == []
    assert q.get_nowait() is None


@pytest.mark.parametrize("max_len,n", [(8, 1), (16, 64), (100, 200), (1000, 30)])
def test_variable_external_sort(tmp_path, temp_files, max_len, n):
    rng = random.Random(max_len + n)
    records = _variable_records(rng, max_len, n)
    infile = _write(tmp_path / "input.bin", records)
    consumers = [BlockConsumer(i, temp_files) for i in range(3)]
    ram = rng.randrange(1, 10001)
    files = _run_pipeline(VariableBlockProducer(infile), consumers, ram, _payload)

    with VariableRecordReader() as reader:
        reader.open_files(files)
        merged = _merged(reader, _payload)

    outfile = tmp_path / "sorted.bin"
    with VariableRecordWriter() as writer:
        writer.open_file(outfile)
        for rec in merged:
            writer.write(rec)
    assert outfile.read_bytes() == b"".join(sorted(records, key=_payload))


@pytest.mark.parametrize("record_len,n", [(1, 1), (2, 500), (16, 128), (64, 40)])
def test_constant_external_sort(tmp_path, temp_files, record_len, n):
    rng = random.Random(record_len * 1000 + n)
    records = _constant_records(rng, record_len, n)
    infile = _write(tmp_path / "input.bin", records)
    consumers = [BlockConsumer(i, temp_files) for i in range(3)]
    ram = rng.randrange(1, 10001)
    files = _run_pipeline(ConstantBlockProducer(infile, record_len), consumers, ram, None)

    with ConstantRecordReader(record_len) as reader:
        reader.open_files(files)
        assert reader.num_files == len(files)
        merged = _merged(reader, None)

    outfile = tmp_path / "sorted.bin"
    with ConstantRecordWriter(record_len) as writer:
        writer.open_file(outfile)
        for rec in merged:
            writer.write(rec)
    assert outfile.read_bytes() == b"".join(sorted(records))


def test_variable_writer_writes_declared_length(tmp_path):
    rec = _variable_records(random.Random(4), 30, 1)[0]
    out = tmp_path / "out"
    with VariableRecordWriter() as writer:
        writer.open_file(out)
        writer.write(rec + b"junk")
    assert out.read_bytes() == rec


def test_writer_without_open_file_raises():
    writer = ConstantRecordWriter(2)
    with pytest.raises(ValueError):
        writer.write(b"ab")


def test_constant_reader_returns_none_at_end(tmp_path):
    path = _write(tmp_path / "in", [b"xy", b"zw"])
    with ConstantRecordReader(2) as reader:
        reader.open_files([path])
        assert [reader.read_record(0), reader.read_record(0), reader.read_record(0)] == [b"xy", b"zw", None]
    assert reader.num_files == 0