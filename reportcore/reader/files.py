"""Result file handles passed to readers."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class ResultFile(Protocol):
    """A named blob of result data, on disk or in memory."""

    def get_original_file_name(self) -> str: ...

    def read_bytes(self) -> bytes: ...


class BufferResultFile:
    """Result data that is already in memory."""

    def __init__(self, content: bytes, original_file_name: str) -> None:
        self.content = content
        self.original_file_name = original_file_name

    def get_original_file_name(self) -> str:
        return self.original_file_name

    def read_bytes(self) -> bytes:
        return self.content

    def __repr__(self) -> str:
        return f"BufferResultFile({self.original_file_name!r})"


class PathResultFile:
    """Result data stored in a file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def get_original_file_name(self) -> str:
        return self.path.name

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def __repr__(self) -> str:
        return f"PathResultFile({str(self.path)!r})"
