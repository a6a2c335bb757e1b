"""Plugin contract and the file namespaces plugins write into.

A plugin is any object exposing a subset of the lifecycle hooks
``start``, ``update``, ``done`` (called with ``(context, store)``) and
``info`` (returns a summary dict or None). Hooks may be plain functions or
coroutines; the orchestrator awaits whatever they return.
"""

from __future__ import annotations

import asyncio
import inspect
import posixpath
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from reportcore.model.history import HistoryDataPoint


# Hooks the orchestrator knows how to call, in lifecycle order
PLUGIN_HOOKS = ("start", "update", "done", "info")


class ReportFiles(Protocol):
    async def add_file(self, path: str, data: bytes) -> str: ...


@dataclass
class PluginDescriptor:
    """One configured plugin.

    ``id`` must be unique within a report; it also names the plugin's
    output directory.
    """

    id: str
    plugin: Any
    enabled: bool = True
    options: dict[str, Any] = field(default_factory=dict)

    def hook(self, name: str) -> Callable[..., Any] | None:
        """Return the plugin's ``name`` hook, or None when not provided."""
        if name not in PLUGIN_HOOKS:
            raise ValueError(f"Unknown plugin hook '{name}'")
        hook = getattr(self.plugin, name, None)
        return hook if callable(hook) else None

    @property
    def publish(self) -> bool:
        return bool(self.options.get("publish", False))


@dataclass
class PluginContext:
    """Everything a plugin hook may read besides the store."""

    report_uuid: str
    report_name: str
    output: Path
    report_files: PluginFiles
    plugin_id: str
    options: dict[str, Any] = field(default_factory=dict)
    history: list[HistoryDataPoint] = field(default_factory=list)
    report_url: str | None = None


class PluginFiles:
    """Prefixes every key with the plugin id before delegating to ``parent``.

    A write under ``key`` is stored under ``{plugin_id}/{key}``.
    """

    def __init__(
        self,
        parent: ReportFiles,
        plugin_id: str,
        callback: Callable[[str, str, bytes], Any] | None = None,
    ) -> None:
        self._parent = parent
        self.plugin_id = plugin_id
        self.callback = callback

    async def add_file(self, key: str, data: bytes) -> str:
        """Store ``data`` and return the path reported by the parent."""
        stored = await self._parent.add_file(posixpath.join(self.plugin_id, key), data)
        if self.callback is not None:
            await maybe_await(self.callback(key, stored, data))
        return stored


class InMemoryReportFiles:
    """Keeps report files in a dict; used for tests and dry runs."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}

    async def add_file(self, path: str, data: bytes) -> str:
        self.files[path] = data
        return path


class FileSystemReportFiles:
    """Writes report files below an output directory."""

    def __init__(self, output: str | Path) -> None:
        self.output = Path(output).resolve()

    async def add_file(self, path: str, data: bytes) -> str:
        target = (self.output / path).resolve()
        if not target.is_relative_to(self.output):
            raise ValueError(f"Report file path escapes the output directory: {path}")
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, target, data)
        return str(target)

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


async def maybe_await(value: Any) -> Any:
    """Await ``value`` when it is awaitable, otherwise return it."""
    if inspect.isawaitable(value):
        return await value
    return value
