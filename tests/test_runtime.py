"""Configuration, wiring and CLI tests."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from core.orchestrator import Orchestrator
from core.policy_runtime import load_effective_config, merge_dicts
from llm.llm_factory import build_llm
from llm.providers.mock_provider import MockProvider
from llm.providers.openai_provider import OPENROUTER_BASE_URL, OpenAIProvider
from ui.cli.cli import app

runner = CliRunner()


def test_merge_dicts_is_recursive() -> None:
    merged = merge_dicts({"a": {"b": 1, "c": 2}, "d": 1}, {"a": {"c": 3}, "e": 4})
    assert merged == {"a": {"b": 1, "c": 3}, "d": 1, "e": 4}


def test_config_files_override_defaults(tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "default.yaml").write_text("scheduler:\n  max_depth: 3\n", encoding="utf-8")
    (config_dir / "tools.yaml").write_text("run_shell:\n  enabled: true\n", encoding="utf-8")

    config = load_effective_config(tmp_path, {"loop": {"max_iterations": 7}})

    assert config["scheduler"]["max_depth"] == 3
    assert config["recovery"]["max_planning_retries"] == 2
    assert config["tools"]["run_shell"] == {"enabled": True, "timeout_seconds": 60}
    assert config["loop"]["max_iterations"] == 7


def test_llm_factory_selects_provider() -> None:
    assert isinstance(build_llm({}), MockProvider)

    openrouter = build_llm(
        {"models": {"llm": {"active_provider": "openrouter", "providers": {"openrouter": {"model": "x/y"}}}}}
    )
    assert isinstance(openrouter, OpenAIProvider)
    assert openrouter.base_url == OPENROUTER_BASE_URL
    assert openrouter.api_key_env == "OPENROUTER_API_KEY"
    assert openrouter.describe() == "openrouter:x/y"


def test_orchestrator_wires_audit_log(tmp_path: Path) -> None:
    bundle = Orchestrator(root=tmp_path).build(overrides={"scheduler": {"max_depth": 2}})

    result = bundle.control_loop.run_goal("implement feature x")

    assert result.completed is True
    assert bundle.stack.max_depth == 2
    audit_lines = bundle.paths["audit_log_path"].read_text(encoding="utf-8").splitlines()
    kinds = {json.loads(line)["kind"] for line in audit_lines}
    assert kinds == {"status", "tool_call"}


def test_cli_run_succeeds_with_mock_provider(tmp_path: Path) -> None:
    result = runner.invoke(app, ["run", "implement feature x", "--root", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "Completed: True" in result.output


def test_cli_run_exits_non_zero_on_failure(tmp_path: Path) -> None:
    result = runner.invoke(app, ["run", "/teleport moon", "--root", str(tmp_path)])

    assert result.exit_code == 1
    assert "Unsupported tool: teleport" in result.output


def test_cli_validate_reports_order_and_errors(tmp_path: Path) -> None:
    reply = MockProvider().chat([{"role": "user", "content": "Decompose this request: tidy up"}])
    good = tmp_path / "good.json"
    good.write_text(reply, encoding="utf-8")
    bad_payload = json.loads(reply)
    phases = bad_payload["plan"]["phases"]
    phases[1]["actions"][0]["dependencies"] = []
    phases[0]["actions"][0]["dependencies"] = [2]
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps(bad_payload), encoding="utf-8")

    ok = runner.invoke(app, ["validate", str(good)])
    failed = runner.invoke(app, ["validate", str(bad)])

    assert ok.exit_code == 0
    assert "is valid" in ok.output
    assert failed.exit_code == 1
    assert "PhaseOrderViolation" in failed.output


def test_cli_tools_list(tmp_path: Path) -> None:
    result = runner.invoke(app, ["tools", "list", "--root", str(tmp_path)])

    assert result.exit_code == 0
    assert "run_shell: disabled" in result.output
    assert "read_file: enabled" in result.output
