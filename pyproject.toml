[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sbwtkit"
version = "0.1.0"
description = "Building blocks for k-mer indexes of DNA: nucleotide helpers, FASTA/FASTQ I/O, an Elias-Fano rank bit vector and external-sort record blocks"
requires-python = ">=3.10"
dependencies = []
keywords = ["bioinformatics", "dna", "fasta", "fastq", "k-mer", "elias-fano", "rank", "external-sort"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Bio-Informatics",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sbwtkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
