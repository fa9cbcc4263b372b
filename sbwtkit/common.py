"""DNA alphabet helpers, log levels and progress reporting."""

from __future__ import annotations

import enum
import math
import sys
import time

MAX_KMER_LENGTH = 32

_DNA_TO_IDX = {"A": 0, "C": 1, "G": 2, "T": 3}
_IDX_TO_DNA = "ACGT"
_RC_TABLE = str.maketrans("ACGTacgt", "TGCAtgca")


class LogLevel(enum.IntEnum):
    """Verbosity of log output; higher values print more."""

    OFF = 0
    MAJOR = 1
    MINOR = 2
    DEBUG = 3


_log_level = LogLevel.MAJOR


def dna_to_char_idx(c: str) -> int:
    """Map an upper-case nucleotide A, C, G, T to 0..3, anything else to -1."""
    return _DNA_TO_IDX.get(c, -1)


def char_idx_to_dna(i: int) -> str:
    """Map 0..3 to the nucleotides A, C, G, T."""
    if not 0 <= i < 4:
        raise ValueError(f"nucleotide index out of range: {i}")
    return _IDX_TO_DNA[i]


def get_rc(c: str) -> str:
    """Complement of a single character; non-ACGT characters map to themselves."""
    if len(c) != 1:
        raise ValueError(f"expected a single character, got {c!r}")
    return c.translate(_RC_TABLE)


def reverse_complement(s: str) -> str:
    """Reverse complement of a sequence, keeping the case of each character."""
    return s[::-1].translate(_RC_TABLE)


def set_log_level(level: LogLevel) -> None:
    """Set the global log level."""
    global _log_level
    _log_level = LogLevel(level)


def get_log_level() -> LogLevel:
    """Return the global log level."""
    return _log_level


def write_log(message: str, level: LogLevel) -> None:
    """Print a time-stamped message to stderr if the log level allows it."""
    if level == LogLevel.OFF or level > _log_level:
        return
    print(f"[{time.strftime('%Y-%m-%d %H:%M:%S')}] {message}", file=sys.stderr, flush=True)


class ProgressPrinter:
    """Prints a percentage to stderr as jobs complete, at MINOR log level or above."""

    def __init__(self, n_jobs: int, total_prints: int) -> None:
        self.n_jobs = n_jobs
        self.total_prints = total_prints
        self.processed = 0
        self.next_print = 0
        self.first_print = True

    def job_done(self) -> None:
        """Record one finished job and print progress when due."""
        if get_log_level() < LogLevel.MINOR:
            return
        err = sys.stderr
        if self.next_print == self.processed:
            if not self.first_print:
                err.write("\r")
            self.first_print = False
            percent = math.floor(100 * (self.processed / self.n_jobs) + 0.5)
            err.write(f"{percent}%")
            err.flush()
            self.next_print += self.n_jobs // self.total_prints
        self.processed += 1
        if self.processed == self.n_jobs:
            err.write("\r100%\n")
        err.flush()