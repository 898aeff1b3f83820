"""Workspace-limited file tools."""

from __future__ import annotations

import fnmatch
import re

from tools.base_tool import BaseTool


class ReadFileTool(BaseTool):
    """Read a text file inside the workspace."""

    def _run(self, target: str, operation: str, content: str) -> str:
        path = self.resolve_path(target)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {target}")
        return path.read_text(encoding="utf-8")


class WriteFileTool(BaseTool):
    """Create or overwrite a file inside the workspace."""

    def _run(self, target: str, operation: str, content: str) -> str:
        if not target:
            raise ValueError("write_file needs a target path")
        path = self.resolve_path(target)
        append = "append" in operation.lower()
        path.parent.mkdir(parents=True, exist_ok=True)
        if append:
            with path.open("a", encoding="utf-8") as fh:
                fh.write(content)
        else:
            path.write_text(content, encoding="utf-8")
        verb = "Appended" if append else "Wrote"
        return f"{verb} {len(content)} characters to {target}"


class ListDirectoryTool(BaseTool):
    """List directory entries, optionally recursive (operation mentions 'recursive')."""

    def _run(self, target: str, operation: str, content: str) -> str:
        base = self.resolve_path(target)
        if not base.is_dir():
            raise NotADirectoryError(f"Not a directory: {target or '.'}")
        recursive = "recursive" in operation.lower()
        entries = base.rglob("*") if recursive else base.iterdir()
        lines = []
        for entry in sorted(entries):
            rel = entry.relative_to(base).as_posix()
            lines.append(f"{rel}/" if entry.is_dir() else rel)
        max_entries = int(self.settings.get("max_entries", 500))
        if len(lines) > max_entries:
            lines = lines[:max_entries] + [f"... ({len(lines) - max_entries} more)"]
        return "\n".join(lines) if lines else "(empty directory)"


class SearchFilesTool(BaseTool):
    """Grep for a regex across workspace files.

    ``operation`` is the pattern; ``target`` is a glob such as ``*.py``.
    """

    def _run(self, target: str, operation: str, content: str) -> str:
        pattern = re.compile(operation)
        file_glob = target or "*"
        root = self.workspace_dir.resolve()
        matches = []
        for path in sorted(root.rglob("*")):
            if not path.is_file() or not fnmatch.fnmatch(path.name, file_glob):
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except (UnicodeDecodeError, OSError):
                continue
            for lineno, line in enumerate(text.splitlines(), start=1):
                if pattern.search(line):
                    matches.append(f"{path.relative_to(root).as_posix()}:{lineno}: {line.strip()}")
        if not matches:
            return f"No matches for '{operation}'"
        max_matches = int(self.settings.get("max_matches", 100))
        if len(matches) > max_matches:
            matches = matches[:max_matches] + [f"... ({len(matches) - max_matches} more)"]
        return "\n".join(matches)
