"""Top-level application orchestrator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.control_loop import ControlLoop
from core.event_bus import EventBus
from core.execution_stack import MAX_DEPTH, ExecutionStack
from core.policy_runtime import ensure_runtime_dirs, load_effective_config
from executor.action_router import ActionRouter
from executor.recovery import RecoveryController, RecoveryPolicy
from executor.safe_runner import SafeRunner
from governance.audit_logger import AuditLogger
from llm.base_llm import BaseLLM
from llm.llm_factory import build_llm
from planner.request_router import RequestRouter
from planner.task_decomposer import TaskDecomposer
from tools.tool_registry import ToolRegistry, build_default_registry

logger = logging.getLogger("planexec.orchestrator")


@dataclass
class RuntimeBundle:
    """Holds initialized runtime components."""

    config: dict[str, Any]
    paths: dict[str, Path]
    llm: BaseLLM
    tool_registry: ToolRegistry
    stack: ExecutionStack
    event_bus: EventBus
    audit_logger: AuditLogger
    control_loop: ControlLoop


class Orchestrator:
    """Creates and wires runtime components for CLI use."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or Path.cwd()).resolve()

    def load_config(self, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        return load_effective_config(self.root, overrides)

    def build(
        self,
        overrides: dict[str, Any] | None = None,
        llm: BaseLLM | None = None,
    ) -> RuntimeBundle:
        """Build a ready-to-run bundle; ``llm`` replaces the configured provider."""
        config = self.load_config(overrides)
        paths = ensure_runtime_dirs(self.root, config)

        llm = llm or build_llm(config=config)
        audit_logger = AuditLogger(paths["audit_log_path"])
        safe_runner = SafeRunner(audit_logger=audit_logger)
        tool_registry = build_default_registry(
            workspace_dir=paths["workspace_dir"],
            config=config.get("tools", {}),
            safe_runner=safe_runner,
        )
        action_router = ActionRouter(tool_registry=tool_registry)
        recovery = RecoveryController(
            decomposer=TaskDecomposer(llm=llm, tool_names=tool_registry.enabled_names()),
            action_router=action_router,
            policy=RecoveryPolicy.from_config(config),
        )

        event_bus = EventBus()
        event_bus.subscribe(EventBus.WILDCARD, audit_logger.handle_event)

        stack = ExecutionStack(
            max_depth=int(config.get("scheduler", {}).get("max_depth", MAX_DEPTH))
        )
        control_loop = ControlLoop(
            stack=stack,
            router=RequestRouter(),
            recovery=recovery,
            event_bus=event_bus,
            max_iterations=int(config.get("loop", {}).get("max_iterations", 200)),
        )
        logger.info("Runtime ready (llm=%s, root=%s)", llm.describe(), self.root)

        return RuntimeBundle(
            config=config,
            paths=paths,
            llm=llm,
            tool_registry=tool_registry,
            stack=stack,
            event_bus=event_bus,
            audit_logger=audit_logger,
            control_loop=control_loop,
        )
