# sbwtkit

Building blocks for k-mer indexing of DNA sequences. The package has no
dependencies outside the standard library.

## Modules

### `sbwtkit.common`

- `dna_to_char_idx(c)` maps `A`, `C`, `G`, `T` to 0–3. Any other character
  maps to -1.
- `char_idx_to_dna(i)` maps 0–3 back to a nucleotide. It raises `ValueError`
  when `i` is out of range.
- `get_rc(c)` and `reverse_complement(s)` complement nucleotides and keep their
  case. Characters other than ACGT are left as they are.
- `LogLevel` has the levels `OFF`, `MAJOR`, `MINOR` and `DEBUG`.
  `set_log_level`, `get_log_level` and `write_log` control the messages that are
  printed to stderr with a timestamp. The default level is `MAJOR`.
- `ProgressPrinter(n_jobs, total_prints)` prints a percentage to stderr as
  `job_done()` is called. It prints only at level `MINOR` or above.
- `MAX_KMER_LENGTH` is 32.

### `sbwtkit.tempfiles`

- `TempFileManager` gives out unique random file names in a directory.
  - Call `set_dir(temp_dir)` first. It raises an error if the directory is missing or is not a directory.
  - `create_filename(prefix="", suffix="")` returns a new name.
  - `delete_file(filename)` removes one file. It only accepts names that this manager created.
  - `delete_all_files()` removes every file the manager handed out.
  - The manager also works as a context manager, which cleans up when it exits.
- `get_temp_file_manager()` returns the process-wide manager. That manager is cleaned up when the process exits.

### `sbwtkit.mef`

- `EliasFanoBitVector(bits, width=None)` is a bit vector with rank support.
  - It splits the bits into buckets of `2**width` bits and stores only the buckets that contain a one.
  - If `width` is not given, `optimize_width` chooses it.
  - `rank(i)` returns the number of ones before position `i`. Calling the object does the same.
  - `len()` gives the original length, and `==` compares two vectors.
  - `serialize(out)` writes the vector to a binary stream and returns the number of bytes written.
  - `EliasFanoBitVector.load(stream)` reads it back.
- `pext(x, mask)` and `shrink_word(x)` are the bit helpers used when choosing the width.

### `sbwtkit.seqio`

- `figure_out_file_format(filename)` returns a `FileFormat`, which holds `format`, `gzipped` and `extension`.
  - It recognises FASTA (`.fasta`, `.fna`, `.ffn`, `.faa`, `.frn`, `.fa`) and FASTQ (`.fastq`, `.fq`).
  - Either may have a `.gz` suffix.
  - It raises `ValueError` for any other extension.
- `open_binary(filename, mode)` opens a file with mode `"rb"` or `"wb"`. It goes through gzip when the name ends in `.gz`.
- `Reader(filename, mode=None)` reads sequences one at a time with `get_next_read()`, or by iteration.
  - The format comes from the file name unless a `Format` is given.
  - Sequences come back upper-cased, and multi-line FASTA records are joined.
  - The latest header is kept in `header`, without its `>` or `@`.
  - `enable_reverse_complements()` makes each read be followed by its reverse complement.
  - `rewind_to_start()` starts reading again from the first sequence.
  - It raises `ValueError` when a file does not start with `>` or `@`, and when a sequence is empty.
  - Multi-line FASTQ is not supported.
- `MultiFileReader(filenames)` reads several files as if they were one file. It offers the same read, reverse-complement and rewind operations.
- `Writer(filename)` writes records with empty headers through `write_sequence(seq)`. In FASTQ the sequence is written again as the quality line.
- `create_reverse_complement_file(filename)` writes the reverse complements to a new temporary file in the same format and returns its name. `create_reverse_complement_files(filenames)` does this for several files. Both need the shared temp file manager's directory to be set.
- `count_sequences(filename)` counts the records in a file.
- `UnbufferedReader` gives one `UnbufferedReadStream` per record through `get_next_query_stream()`.
  - Each stream has the record's `header` and returns its sequence with `getchar()` or `get_all()`.
  - `set_upper_case(flag)` controls whether later streams upper-case their sequences.
  - `done()` reports whether any records remain.

### `sbwtkit.em_blocks`

This module holds the pieces of external-memory sorting. It handles two kinds of binary record:

- constant records, which all have the same size;
- variable records, which begin with an 8-byte big-endian length of the whole record.

Its contents:

- `parse_big_endian_ll`, `write_big_endian_ll` and `read_variable_binary_record`.
- `ConstantBinaryBlock` and `VariableBinaryBlock` hold records in memory.
  - `add_record`, `sort(key)`, `write_to_file` and `estimate_size_in_bytes` work on them.
  - `get_next_constant_binary_block` and `get_next_variable_binary_block` fill a block from a stream up to a byte budget.
- `ConstantBlockProducer` and `VariableBlockProducer` split a file into blocks. They put the blocks on a `queue.Queue` and then put `None` as an end marker.
- `BlockConsumer` takes blocks from the queue, sorts each one and writes it to its own temporary file, whose name it adds to `filenames`. It puts `None` back on the queue for the other consumers.
- `ConstantRecordReader` and `VariableRecordReader` read records from several open files.
- `ConstantRecordWriter` and `VariableRecordWriter` write records to one file.

## Example

```python
from sbwtkit.common import reverse_complement
from sbwtkit.seqio import Reader, Writer

with Writer("reads.fna") as writer:
    writer.write_sequence("ACGTTG")

with Reader("reads.fna") as reader:
    reader.enable_reverse_complements()
    while read := reader.get_next_read():
        print(read)

print(reverse_complement("AACG"))  # CGTT
```

## What this package does not do

- It does not build or search a k-mer index.
- It has no command-line program.
- It does not count k-mers.
- `sbwtkit.em_blocks` writes sorted blocks to separate files. It has no step that merges those sorted files into a single output.

## Tests

```
pip install .[test]
pytest
```