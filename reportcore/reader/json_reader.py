"""Reader for result directories in the unified JSON record format.

File naming decides the record type:

- ``*-result.json``: one test result
- ``*-container.json``: one fixture
- ``*-attachment.*``: raw attachment content, id taken from the file name
- ``*-globals.json``: run-wide ``errors`` (message, trace) and
  ``attachments`` (links to attachment files)

Anything else raises ``UnrecognizedFormatError`` so the caller can skip it.
"""

from __future__ import annotations

import json
import mimetypes
from dataclasses import dataclass, field
from typing import Any, Protocol

from reportcore.errors import UnrecognizedFormatError
from reportcore.model.results import Attachment, AttachmentLink, Fixture, TestResult
from reportcore.reader.files import ResultFile


@dataclass
class ReadResults:
    """Records produced from one result file."""

    results: list[TestResult] = field(default_factory=list)
    fixtures: list[Fixture] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    global_errors: list[dict[str, Any]] = field(default_factory=list)
    global_attachments: list[AttachmentLink] = field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            len(self.results) + len(self.fixtures) + len(self.attachments)
            + len(self.global_errors) + len(self.global_attachments)
        )


class ResultsReader(Protocol):
    """Turns one result file into records or raises UnrecognizedFormatError."""

    def read(self, result_file: ResultFile) -> ReadResults: ...


class JsonResultsReader:
    """Reads result, container, globals and attachment files."""

    def read(self, result_file: ResultFile) -> ReadResults:
        name = result_file.get_original_file_name()

        if name.endswith("-result.json"):
            data = self._load_json(result_file)
            try:
                return ReadResults(results=[TestResult.from_dict(data)])
            except (TypeError, ValueError) as e:
                raise UnrecognizedFormatError(f"{name}: {e}") from e

        if name.endswith("-container.json"):
            data = self._load_json(result_file)
            try:
                return ReadResults(fixtures=[Fixture.from_dict(data)])
            except (TypeError, ValueError) as e:
                raise UnrecognizedFormatError(f"{name}: {e}") from e

        if name.endswith("-globals.json"):
            data = self._load_json(result_file)
            try:
                return ReadResults(
                    global_errors=[_global_error(e) for e in data.get("errors") or []],
                    global_attachments=[
                        AttachmentLink.from_dict(a) for a in data.get("attachments") or []
                    ],
                )
            except (AttributeError, TypeError, ValueError) as e:
                raise UnrecognizedFormatError(f"{name}: {e}") from e

        if "-attachment" in name:
            content_type, _ = mimetypes.guess_type(name)
            return ReadResults(attachments=[
                Attachment(
                    id=name,
                    name=name,
                    content_type=content_type,
                    content=result_file.read_bytes(),
                )
            ])

        raise UnrecognizedFormatError(f"{name}: unsupported result file")

    @staticmethod
    def _load_json(result_file: ResultFile) -> dict:
        name = result_file.get_original_file_name()
        try:
            data = json.loads(result_file.read_bytes().decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise UnrecognizedFormatError(f"{name}: invalid JSON ({e})") from e
        if not isinstance(data, dict):
            raise UnrecognizedFormatError(f"{name}: expected a JSON object")
        return data


def _global_error(data: dict[str, Any]) -> dict[str, Any]:
    if not data.get("message"):
        raise ValueError("Global error is missing the 'message' field")
    return {"message": str(data["message"]), "trace": data.get("trace")}
