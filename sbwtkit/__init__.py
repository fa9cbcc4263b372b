"""DNA helpers, FASTA/FASTQ I/O, temp files, an Elias-Fano rank bit vector and external-sort blocks."""

__version__ = "0.1.0"
__all__ = ["common", "tempfiles", "mef", "seqio", "em_blocks"]