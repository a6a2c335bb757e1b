"""Report configuration.

A configuration file (JSON or YAML) is merged over ``DEFAULT_CONFIG``.
Plugins are configured as a mapping of plugin id to entry::

    plugins:
      report:
        import: reportcore.plugins.json_report:JsonReportPlugin
        options:
          publish: true
      log:
        import: reportcore.plugins.log_plugin:LogPlugin
        enabled: false

The ``import`` value is a ``module:attr`` string; the attribute is called
with the entry's options to create the plugin. A list of entries carrying
an ``id`` key is accepted too.
"""

from __future__ import annotations

import importlib
import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml

from reportcore.history.points import DEFAULT_REPORT_NAME
from reportcore.logs import DEFAULT_LOGS_DIR
from reportcore.plugins.api import PluginDescriptor
from reportcore.quality_gate.gate import validate_rulesets


DEFAULT_PLUGINS: dict[str, Any] = {
    "report": {"import": "reportcore.plugins.json_report:JsonReportPlugin"},
}

# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "name": DEFAULT_REPORT_NAME,
    "output": "reportcore-report",
    "history_path": None,
    "history_limit": None,
    "known_issues_path": None,
    "quality_gate": None,
    "service": None,
    "plugins": DEFAULT_PLUGINS,
    "logs_dir": str(DEFAULT_LOGS_DIR),
    "variables": None,
    "environment_variables": None,
}

CONFIG_SUFFIXES = (".json", ".yaml", ".yml")


class ReportConfig:
    """Read-only view over a merged configuration dict."""

    def __init__(self, data: dict[str, Any] | None = None, path: Path | None = None) -> None:
        self.path = path
        self._data: dict[str, Any] = {**DEFAULT_CONFIG, **(data or {})}
        self._plugins: list[PluginDescriptor] | None = None

    @property
    def config(self) -> dict[str, Any]:
        return dict(self._data)

    @property
    def name(self) -> str:
        return str(self._data.get("name") or DEFAULT_REPORT_NAME)

    @property
    def output(self) -> Path:
        return Path(self._data.get("output") or DEFAULT_CONFIG["output"])

    @property
    def history_path(self) -> Path | None:
        val = self._data.get("history_path")
        return Path(val) if val else None

    @property
    def history_limit(self) -> int | None:
        """Max history points to keep (None = unlimited)."""
        val = self._data.get("history_limit")
        return int(val) if val is not None else None

    @property
    def known_issues_path(self) -> Path | None:
        val = self._data.get("known_issues_path")
        return Path(val) if val else None

    @property
    def quality_gate(self) -> list[dict[str, Any]]:
        """Quality gate rulesets; empty when no gate is configured."""
        val = self._data.get("quality_gate")
        if not val:
            return []
        if isinstance(val, dict):
            return [val]
        return list(val)

    @property
    def service(self) -> dict[str, Any] | None:
        """Remote service settings, or None when no service url is set."""
        val = self._data.get("service")
        if not val or not val.get("url"):
            return None
        return {
            "url": val["url"],
            "project": val.get("project"),
            "access_token": val.get("access_token"),
            "branch": val.get("branch"),
        }

    @property
    def logs_dir(self) -> Path:
        return Path(self._data.get("logs_dir") or DEFAULT_CONFIG["logs_dir"])

    @property
    def variables(self) -> dict[str, Any]:
        """Report-wide variables."""
        return dict(self._data.get("variables") or {})

    @property
    def environment_variables(self) -> dict[str, dict[str, Any]]:
        """Variables per environment name, on top of the report-wide ones."""
        val = self._data.get("environment_variables") or {}
        return {env: dict(variables or {}) for env, variables in val.items()}

    @property
    def plugins(self) -> list[PluginDescriptor]:
        return list(self._resolved_plugins())

    def resolve(self) -> ReportConfig:
        """Create the plugins and check quality gate rule names.

        Raises:
            ValueError: If a plugin can't be created or a ruleset names an
                unknown rule.
        """
        self._resolved_plugins()
        validate_rulesets(self.quality_gate)
        return self

    def _resolved_plugins(self) -> list[PluginDescriptor]:
        if self._plugins is None:
            self._plugins = resolve_plugins(self._data.get("plugins") or {})
        return self._plugins


def load_config(path: str | Path) -> ReportConfig:
    """Load and resolve a JSON or YAML configuration file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is invalid or its plugins or quality gate
            can't be resolved.
    """
    path = Path(path)
    return resolve_config(read_config_data(path), path=path)


def read_config_data(path: str | Path) -> dict[str, Any]:
    """Read the raw mapping of a JSON or YAML configuration file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file type is not supported or the content is
            not a mapping.
    """
    path = Path(path)
    if path.suffix not in CONFIG_SUFFIXES:
        raise ValueError(f"Unsupported config file type: {path.name}")

    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        data = json.loads(text)
    else:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def resolve_config(data: dict[str, Any], path: Path | None = None) -> ReportConfig:
    """Build a config and resolve it, so configuration errors surface early."""
    return ReportConfig(data, path=path).resolve()


def resolve_plugins(entries: dict[str, Any] | Iterable[Any]) -> list[PluginDescriptor]:
    """Turn plugin entries into descriptors, keeping their declared order.

    Raises:
        ValueError: On duplicate ids or an entry without a plugin.
    """
    if isinstance(entries, dict):
        items = [(plugin_id, entry) for plugin_id, entry in entries.items()]
    else:
        items = []
        for entry in entries:
            if isinstance(entry, PluginDescriptor):
                items.append((entry.id, entry))
            else:
                items.append((entry.get("id"), entry))

    descriptors: list[PluginDescriptor] = []
    seen: set[str] = set()
    for plugin_id, entry in items:
        if not plugin_id:
            raise ValueError("Plugin entry is missing an id")
        if plugin_id in seen:
            raise ValueError(f"Duplicate plugin id '{plugin_id}'")
        seen.add(plugin_id)

        if isinstance(entry, PluginDescriptor):
            descriptors.append(entry)
            continue

        entry = entry or {}
        options = dict(entry.get("options") or {})
        plugin = entry.get("plugin")
        if plugin is None:
            target = entry.get("import")
            if not target:
                raise ValueError(f"Plugin '{plugin_id}' has neither 'import' nor 'plugin'")
            plugin = import_object(target)(options)

        descriptors.append(PluginDescriptor(
            id=plugin_id,
            plugin=plugin,
            enabled=bool(entry.get("enabled", True)),
            options=options,
        ))
    return descriptors


def import_object(target: str) -> Any:
    """Import ``module:attr`` (or ``module.attr``)."""
    if ":" in target:
        module_name, _, attr = target.partition(":")
    else:
        module_name, _, attr = target.rpartition(".")
    if not module_name or not attr:
        raise ValueError(f"Invalid import path '{target}'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Can't import plugin module '{module_name}': {e}")
    try:
        return getattr(module, attr)
    except AttributeError:
        raise ValueError(f"Module '{module_name}' has no attribute '{attr}'")
