"""Reading and writing of FASTA and FASTQ sequence files, plain or gzipped."""

from __future__ import annotations

import enum
import gzip
import os
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Iterator

from sbwtkit.common import reverse_complement
from sbwtkit.tempfiles import get_temp_file_manager

_FASTA_EXTENSIONS = (".fasta", ".fna", ".ffn", ".faa", ".frn", ".fa")
_FASTQ_EXTENSIONS = (".fastq", ".fq")
_ENCODING = "latin-1"


class Format(enum.Enum):
    """Sequence file format."""

    FASTA = "fasta"
    FASTQ = "fastq"


@dataclass(frozen=True)
class FileFormat:
    """Format of a sequence file as determined from its name."""

    format: Format
    gzipped: bool
    extension: str  # includes a trailing .gz if present


def figure_out_file_format(filename: str | os.PathLike) -> FileFormat:
    """Determine the format of a sequence file from its extension."""
    name = os.fspath(filename)
    gzipped = name.endswith(".gz")
    base = name[:-3] if gzipped else name
    ext = os.path.splitext(base)[1]
    lowered = ext.lower()
    if lowered in _FASTA_EXTENSIONS:
        fmt = Format.FASTA
    elif lowered in _FASTQ_EXTENSIONS:
        fmt = Format.FASTQ
    else:
        raise ValueError(f"Unknown file format: {name}")
    return FileFormat(fmt, gzipped, ext + (".gz" if gzipped else ""))


def open_binary(filename: str | os.PathLike, mode: str) -> BinaryIO:
    """Open a file in binary mode, through gzip if its name ends in .gz."""
    name = os.fspath(filename)
    if mode not in ("rb", "wb"):
        raise ValueError(f"unsupported mode: {mode!r}")
    if name.endswith(".gz"):
        return gzip.open(name, mode)
    return open(name, mode)


def _strip_newline(line: bytes) -> bytes:
    return line[:-1] if line.endswith(b"\n") else line


class Reader:
    """Reads the sequences of a FASTA or FASTQ file one at a time.

    Sequences are upper-cased. The header of the most recent read, without its
    leading '>' or '@', is kept in ``header``. Multi-line FASTQ is not supported.
    """

    def __init__(self, filename: str | os.PathLike, mode: Format | None = None) -> None:
        self.filename = os.fspath(filename)
        if mode is None:
            mode = figure_out_file_format(self.filename).format
        if not isinstance(mode, Format):
            raise ValueError("Unknown sequence format")
        self.mode = mode
        self.header = ""
        self._reverse_complements = False
        self._pending_rc: str | None = None
        self._stream: BinaryIO | None = None
        self._open()

    def _open(self) -> None:
        self.close()
        self._stream = open_binary(self.filename, "rb")
        self._carry: bytes | None = None
        self._eof = False
        first = self._stream.read(1)
        if self.mode is Format.FASTA and first != b">":
            self.close()
            raise ValueError(f"ERROR: FASTA file {self.filename} does not start with '>'")
        if self.mode is Format.FASTQ and first != b"@":
            self.close()
            raise ValueError(f"ERROR: FASTQ file {self.filename} does not start with '@'")

    def _next_line(self) -> bytes | None:
        if self._carry is not None:
            line, self._carry = self._carry, None
            return line
        line = self._stream.readline()
        return line if line else None

    def _read_fasta(self) -> tuple[bytes, bytes]:
        header = _strip_newline(self._next_line() or b"")
        parts = []
        while True:
            line = self._next_line()
            if line is None:
                self._eof = True
                break
            pos = line.find(b">")
            if pos >= 0:
                parts.append(line[:pos])
                self._carry = line[pos + 1:]
                break
            parts.append(line)
        seq = b"".join(parts).replace(b"\n", b"")
        if not seq:
            raise ValueError("Error: empty sequence in FASTA file.")
        return header, seq

    def _read_fastq(self) -> tuple[bytes, bytes]:
        header = _strip_newline(self._next_line() or b"")
        seq = _strip_newline(self._next_line() or b"")
        self._next_line()  # '+' line
        self._next_line()  # quality line
        if not self._stream.read(1):  # the '@' of the next record
            self._eof = True
        if not seq:
            raise ValueError("Error: empty sequence in FASTQ file.")
        return header, seq

    def enable_reverse_complements(self) -> None:
        """Return each read followed by its reverse complement from now on."""
        self._reverse_complements = True
        self._pending_rc = None

    def rewind_to_start(self) -> None:
        """Start reading again from the first sequence."""
        self._open()
        self._pending_rc = None

    def get_next_read(self) -> str:
        """Return the next sequence, or an empty string when there are none left."""
        if self._pending_rc is not None:
            read, self._pending_rc = self._pending_rc, None
            return read
        if self._eof or self._stream is None:
            return ""
        if self.mode is Format.FASTA:
            header, seq = self._read_fasta()
        else:
            header, seq = self._read_fastq()
        self.header = header.decode(_ENCODING)
        read = seq.upper().decode(_ENCODING)
        if self._reverse_complements:
            self._pending_rc = reverse_complement(read)
        return read

    def __iter__(self) -> Iterator[str]:
        while read := self.get_next_read():
            yield read

    def close(self) -> None:
        """Close the underlying file."""
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def __enter__(self) -> Reader:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class MultiFileReader:
    """Reads sequences from several files as if they were one file."""

    def __init__(self, filenames: Iterable[str | os.PathLike]) -> None:
        self.filenames = [os.fspath(f) for f in filenames]
        self.header = ""
        self._index = 0
        self._reverse_complements = False
        self._reader = Reader(self.filenames[0]) if self.filenames else None

    def _new_reader(self, filename: str) -> Reader:
        reader = Reader(filename)
        if self._reverse_complements:
            reader.enable_reverse_complements()
        return reader

    def get_next_read(self) -> str:
        """Return the next sequence, or an empty string when all files are done."""
        if self._index == len(self.filenames):
            return ""
        read = self._reader.get_next_read()
        while not read:
            self._reader.close()
            self._index += 1
            if self._index == len(self.filenames):
                return ""
            self._reader = self._new_reader(self.filenames[self._index])
            read = self._reader.get_next_read()
        self.header = self._reader.header
        return read

    def __iter__(self) -> Iterator[str]:
        while read := self.get_next_read():
            yield read

    def enable_reverse_complements(self) -> None:
        """Return each read followed by its reverse complement from now on."""
        self._reverse_complements = True
        if self._reader is not None:
            self._reader.enable_reverse_complements()

    def rewind_to_start(self) -> None:
        """Start reading again from the first sequence of the first file."""
        self._index = 0
        if self.filenames:
            if self._reader is not None:
                self._reader.close()
            self._reader = self._new_reader(self.filenames[0])

    def close(self) -> None:
        """Close the file currently being read."""
        if self._reader is not None:
            self._reader.close()

    def __enter__(self) -> MultiFileReader:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Writer:
    """Writes sequences with empty headers in the format given by the file name.

    In FASTQ the sequence itself is written again as the quality line.
    """

    def __init__(self, filename: str | os.PathLike) -> None:
        self.filename = os.fspath(filename)
        self.mode = figure_out_file_format(self.filename).format
        self._out = open_binary(self.filename, "wb")

    def write_sequence(self, seq: str | bytes) -> None:
        """Write one sequence record."""
        data = seq.encode(_ENCODING) if isinstance(seq, str) else bytes(seq)
        if self.mode is Format.FASTA:
            self._out.write(b">\n" + data + b"\n")
        else:
            self._out.write(b"@\n" + data + b"\n+\n" + data + b"\n")

    def flush(self) -> None:
        """Flush buffered output."""
        self._out.flush()

    def close(self) -> None:
        """Flush and close the file."""
        if not self._out.closed:
            self._out.close()

    def __enter__(self) -> Writer:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def create_reverse_complement_file(filename: str | os.PathLike) -> str:
    """Write the reverse complements of all sequences to a new temporary file; return its name."""
    fmt = figure_out_file_format(filename)
    out_name = get_temp_file_manager().create_filename("", fmt.extension)
    with Reader(filename) as reader, Writer(out_name) as writer:
        for read in reader:
            writer.write_sequence(reverse_complement(read))
    return out_name


def create_reverse_complement_files(filenames: Iterable[str | os.PathLike]) -> list[str]:
    """Create a reverse-complemented copy of each file; return the new names."""
    return [create_reverse_complement_file(f) for f in filenames]


def count_sequences(filename: str | os.PathLike) -> int:
    """Number of sequences in a FASTA or FASTQ file."""
    with Reader(filename) as reader:
        return sum(1 for _ in reader)


class UnbufferedReadStream:
    """Character-by-character access to the sequence of one record."""

    def __init__(self, file: BinaryIO, header: str, mode: Format, upper_case_enabled: bool) -> None:
        self._file = file
        self.header = header
        self.mode = mode
        self.upper_case_enabled = upper_case_enabled

    def _peek(self) -> bytes:
        return self._file.peek(1)[:1]

    def _convert(self, data: bytes) -> str:
        if self.upper_case_enabled:
            data = data.upper()
        return data.decode(_ENCODING)

    def _skip_fastq_tail(self) -> None:
        self._file.readline()  # '+' line
        self._file.readline()  # quality line

    def getchar(self) -> str | None:
        """Return the next sequence character, or None at the end of the record.

        At the end the file is left at the start of the next record's header.
        """
        if self.mode is Format.FASTA:
            while True:
                nxt = self._peek()
                if nxt in (b"", b">"):
                    return None
                c = self._file.read(1)
                if c in (b"\n", b"\r"):
                    continue
                return self._convert(c)
        if self.mode is Format.FASTQ:
            nxt = self._peek()
            if nxt in (b"\n", b"\r"):
                self._file.readline()
                self._skip_fastq_tail()
                return None
            if not nxt:
                return None
            return self._convert(self._file.read(1))
        raise ValueError(f"Invalid sequence read mode: {self.mode}")

    def get_all(self) -> str:
        """Return the rest of the record's sequence."""
        if self.mode is Format.FASTA:
            parts = []
            while True:
                chunk = self._file.peek(1)
                if not chunk:
                    break
                pos = chunk.find(b">")
                if pos == 0:
                    break
                taken = chunk if pos < 0 else chunk[:pos]
                self._file.read(len(taken))
                parts.append(taken)
            data = b"".join(parts).replace(b"\n", b"").replace(b"\r", b"")
            return self._convert(data)
        if self.mode is Format.FASTQ:
            line = self._file.readline()
            ends = [p for p in (line.find(b"\r"), line.find(b"\n")) if p >= 0]
            seq = line[:min(ends)] if ends else line
            self._skip_fastq_tail()
            return self._convert(seq)
        raise ValueError(f"Invalid sequence read mode: {self.mode}")


class UnbufferedReader:
    """Reads records one at a time, handing out a character stream for each."""

    def __init__(self, filename: str | os.PathLike, mode: Format | None = None) -> None:
        self.filename = os.fspath(filename)
        if mode is None:
            mode = figure_out_file_format(self.filename).format
        if not isinstance(mode, Format):
            raise ValueError("Unknown sequence format")
        self.mode = mode
        self.upper_case_enabled = True
        self._file = open_binary(self.filename, "rb")
        first = self._file.peek(1)[:1]
        if mode is Format.FASTA and first != b">":
            self._file.close()
            raise ValueError("Error: FASTA-file does not start with '>'")
        if mode is Format.FASTQ and first != b"@":
            self._file.close()
            raise ValueError("Error: FASTQ-file does not start with '@'")

    def get_next_query_stream(self) -> UnbufferedReadStream:
        """Read the next header and return a stream over that record's sequence."""
        line = _strip_newline(self._file.readline())
        if not line:
            raise ValueError("Error: FASTA or FASTQ parsing: header does not start with '>' or '@'")
        header = line[1:].decode(_ENCODING)
        return UnbufferedReadStream(self._file, header, self.mode, self.upper_case_enabled)

    def set_upper_case(self, flag: bool) -> None:
        """Choose whether new query streams upper-case their sequences."""
        self.upper_case_enabled = flag

    def done(self) -> bool:
        """True when no records remain."""
        return not self._file.peek(1)

    def close(self) -> None:
        """Close the underlying file."""
        self._file.close()

    def __enter__(self) -> UnbufferedReader:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()