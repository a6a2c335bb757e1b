"""Readers that turn result files into store records."""

from reportcore.reader.files import BufferResultFile, PathResultFile, ResultFile
from reportcore.reader.json_reader import JsonResultsReader, ReadResults, ResultsReader

__all__ = [
    "BufferResultFile",
    "JsonResultsReader",
    "PathResultFile",
    "ReadResults",
    "ResultFile",
    "ResultsReader",
]
