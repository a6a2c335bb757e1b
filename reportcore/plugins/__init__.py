"""Plugin contract, report file namespaces and built-in plugins."""

from reportcore.plugins.api import (
    PLUGIN_HOOKS,
    FileSystemReportFiles,
    InMemoryReportFiles,
    PluginContext,
    PluginDescriptor,
    PluginFiles,
    maybe_await,
)
from reportcore.plugins.json_report import JsonReportPlugin
from reportcore.plugins.log_plugin import LogPlugin
from reportcore.plugins.summary import build_plugin_summary, generate_summary

__all__ = [
    "PLUGIN_HOOKS",
    "FileSystemReportFiles",
    "InMemoryReportFiles",
    "JsonReportPlugin",
    "LogPlugin",
    "PluginContext",
    "PluginDescriptor",
    "PluginFiles",
    "build_plugin_summary",
    "generate_summary",
    "maybe_await",
]
