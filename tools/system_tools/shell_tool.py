"""Shell execution tool (disabled by default)."""

from __future__ import annotations

import subprocess

from tools.base_tool import BaseTool


class ShellTool(BaseTool):
    """Runs the ``target`` command in the workspace when enabled by config."""

    def _run(self, target: str, operation: str, content: str) -> str:
        command = target.strip()
        if not command:
            raise ValueError("No command provided.")
        timeout = float(self.settings.get("timeout_seconds", 60))
        # TimeoutExpired propagates so the safe runner can mark it transient.
        proc = subprocess.run(
            command,
            shell=True,
            cwd=self.workspace_dir,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        output = proc.stdout.strip() or proc.stderr.strip()
        if proc.returncode != 0:
            raise RuntimeError(f"exit code {proc.returncode}: {output[:1000]}")
        return output or "(no output)"
