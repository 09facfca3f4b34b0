"""Command-line drivers for vibefinder (``python -m src.cli --help``)."""
