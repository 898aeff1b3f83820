"""Tool registry and default tool wiring."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.errors import UnsupportedTool
from executor.safe_runner import SafeRunner
from tools.base_tool import BaseTool
from tools.system_tools.file_tool import (
    ListDirectoryTool,
    ReadFileTool,
    SearchFilesTool,
    WriteFileTool,
)
from tools.system_tools.shell_tool import ShellTool


class MockTool(BaseTool):
    """Safe deterministic tool for offline end-to-end execution."""

    def _run(self, target: str, operation: str, content: str) -> str:
        op_l = operation.lower()
        category = "general"
        if "verify" in op_l or "test" in op_l:
            category = "verification"
        elif "summarize" in op_l or "analy" in op_l:
            category = "analysis"
        return f"Executed deterministic handler for '{operation}' on '{target}' ({category})."


@dataclass
class RegisteredTool:
    """Metadata for tool listing output."""

    name: str
    enabled: bool
    aliases: tuple[str, ...] = ()


class ToolRegistry:
    """In-memory mapping from tool name (or alias) to tool instance."""

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}
        self._aliases: dict[str, str] = {}

    def register(self, name: str, tool: BaseTool, aliases: tuple[str, ...] = ()) -> None:
        self._tools[name] = tool
        for alias in aliases:
            self._aliases[alias] = name

    def canonical_name(self, name: str) -> str:
        key = name.strip().lower()
        return self._aliases.get(key, key)

    def get(self, name: str) -> BaseTool | None:
        tool = self._tools.get(self.canonical_name(name))
        if tool and tool.enabled:
            return tool
        return None

    def resolve(self, name: str) -> BaseTool:
        """Like ``get`` but raises ``UnsupportedTool`` for unknown or disabled names."""
        tool = self.get(name)
        if tool is None:
            raise UnsupportedTool(name)
        return tool

    def enabled_names(self) -> list[str]:
        return [name for name, tool in sorted(self._tools.items()) if tool.enabled]

    def list_tools(self) -> list[RegisteredTool]:
        return [
            RegisteredTool(
                name=name,
                enabled=tool.enabled,
                aliases=tuple(sorted(a for a, target in self._aliases.items() if target == name)),
            )
            for name, tool in sorted(self._tools.items())
        ]


def _tool_enabled(config: dict[str, Any], tool_name: str, default: bool) -> bool:
    tool_cfg = config.get(tool_name, {})
    if not isinstance(tool_cfg, dict):
        return default
    return bool(tool_cfg.get("enabled", default))


def _tool_settings(config: dict[str, Any], tool_name: str) -> dict[str, Any]:
    tool_cfg = config.get(tool_name, {})
    if not isinstance(tool_cfg, dict):
        return {}
    return dict(tool_cfg)


_DEFAULT_TOOLS: list[tuple[str, type[BaseTool], bool, tuple[str, ...]]] = [
    ("mock_tool", MockTool, True, ("mock",)),
    ("read_file", ReadFileTool, True, ("read",)),
    ("write_file", WriteFileTool, True, ("write", "edit")),
    ("list_directory", ListDirectoryTool, True, ("ls", "list")),
    ("search_files", SearchFilesTool, True, ("grep", "search")),
    ("run_shell", ShellTool, False, ("bash", "shell")),
]


def build_default_registry(
    *,
    workspace_dir: Path,
    config: dict[str, Any],
    safe_runner: SafeRunner,
) -> ToolRegistry:
    """Build the default tool registry from the ``tools`` config section."""
    registry = ToolRegistry()
    for name, tool_cls, default_enabled, aliases in _DEFAULT_TOOLS:
        registry.register(
            name,
            tool_cls(
                name=name,
                safe_runner=safe_runner,
                workspace_dir=workspace_dir,
                enabled=_tool_enabled(config, name, default_enabled),
                settings=_tool_settings(config, name),
            ),
            aliases=aliases,
        )
    return registry
