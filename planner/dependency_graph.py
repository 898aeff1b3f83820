"""Plan dependency graph: validation, ordering and readiness queries."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field

from core.errors import ValidationError
from planner.execution_plan import ActionStatus, Plan, ValidatedPlan

logger = logging.getLogger("planexec.dependency_graph")


@dataclass
class DependencyGraph:
    """Represents dependencies among the actions of one plan.

    Edges point from a prerequisite to the action that depends on it.
    """

    nodes: list[int] = field(default_factory=list)
    edges: list[tuple[int, int]] = field(default_factory=list)

    @classmethod
    def from_plan(cls, plan: Plan) -> DependencyGraph:
        graph = cls()
        for action in plan.all_actions():
            graph.nodes.append(action.id)
            for dep in action.dependencies:
                graph.edges.append((dep, action.id))
        return graph

    def dependents(self) -> dict[int, list[int]]:
        index: dict[int, list[int]] = {node: [] for node in self.nodes}
        for src, dst in self.edges:
            index.setdefault(src, []).append(dst)
        for targets in index.values():
            targets.sort()
        return index

    def prerequisites(self) -> dict[int, list[int]]:
        index: dict[int, list[int]] = {node: [] for node in self.nodes}
        for src, dst in self.edges:
            index.setdefault(dst, []).append(src)
        return index

    def topological_order(self) -> tuple[list[int], set[int]]:
        """Kahn's algorithm; returns the order and any nodes left unsorted."""
        indegree = {node: 0 for node in self.nodes}
        for _, dst in self.edges:
            indegree[dst] += 1
        dependents = self.dependents()
        queue = deque(sorted(node for node, deg in indegree.items() if deg == 0))
        order: list[int] = []
        while queue:
            node = queue.popleft()
            order.append(node)
            for nxt in dependents.get(node, []):
                indegree[nxt] -= 1
                if indegree[nxt] == 0:
                    queue.append(nxt)
        remaining = set(self.nodes) - set(order)
        return order, remaining

    def cycle_members(self, remaining: set[int]) -> set[int]:
        """Narrow Kahn leftovers down to nodes that sit on a cycle."""
        members = set(remaining)
        dependents = self.dependents()
        changed = True
        while changed:
            changed = False
            for node in sorted(members):
                if not any(nxt in members for nxt in dependents.get(node, [])):
                    members.discard(node)
                    changed = True
        return members


def validate(plan: Plan) -> ValidatedPlan:
    """Validate ``plan`` and annotate it with a deterministic execution order.

    Raises ``ValidationError`` naming the offending action ids and the rule
    violated. Validation is all-or-nothing; the plan is not mutated.
    """
    seen: set[int] = set()
    duplicates: list[int] = []
    phase_index: dict[int, int] = {}
    for idx, phase in enumerate(plan.phases):
        for action in phase.actions:
            if action.id in seen:
                duplicates.append(action.id)
            seen.add(action.id)
            phase_index.setdefault(action.id, idx)
    if duplicates:
        raise ValidationError(
            ValidationError.DUPLICATE_ACTION, duplicates, "action ids must be unique"
        )

    unknown = [
        action.id
        for action in plan.all_actions()
        if any(dep not in seen for dep in action.dependencies)
    ]
    if unknown:
        raise ValidationError(
            ValidationError.UNKNOWN_DEPENDENCY,
            unknown,
            "dependencies must reference actions in the same plan",
        )

    graph = DependencyGraph.from_plan(plan)
    topo, remaining = graph.topological_order()
    if remaining:
        members = graph.cycle_members(remaining) or remaining
        raise ValidationError(ValidationError.CYCLIC, list(members), "dependency cycle")

    forward = [
        action.id
        for action in plan.all_actions()
        if any(phase_index[dep] > phase_index[action.id] for dep in action.dependencies)
    ]
    if forward:
        raise ValidationError(
            ValidationError.PHASE_ORDER,
            forward,
            "actions may only depend on the same or an earlier phase",
        )

    prerequisites = graph.prerequisites()
    depths: dict[int, int] = {}
    for node in topo:
        deps = prerequisites.get(node, [])
        depths[node] = 1 + max(depths[d] for d in deps) if deps else 0

    phase_order = [
        sorted((a.id for a in phase.actions), key=lambda i: (depths[i], i))
        for phase in plan.phases
    ]
    rank: dict[int, int] = {}
    for ids in phase_order:
        for action_id in ids:
            rank[action_id] = len(rank)

    logger.debug("Validated plan %s with %d actions", plan.id, len(rank))
    return ValidatedPlan(
        plan=plan,
        phase_order=phase_order,
        depths=depths,
        dependents=graph.dependents(),
        rank=rank,
        phase_index=phase_index,
        actions={action.id: action for action in plan.all_actions()},
    )


def newly_ready(
    validated: ValidatedPlan,
    completed_id: int,
    statuses: Mapping[int, ActionStatus],
) -> list[int]:
    """Dependents of ``completed_id`` whose prerequisites are now all completed.

    Only walks the out-edges of ``completed_id``. Results are in validated order.
    """
    ready: list[int] = []
    for dependent in validated.dependents.get(completed_id, []):
        if statuses.get(dependent) is not ActionStatus.PENDING:
            continue
        deps = validated.action(dependent).dependencies
        if all(statuses.get(dep) is ActionStatus.COMPLETED for dep in deps):
            ready.append(dependent)
    return sorted(ready, key=lambda i: validated.rank[i])


def transitive_dependents(validated: ValidatedPlan, action_id: int) -> list[int]:
    """Every action that directly or indirectly depends on ``action_id``."""
    found: set[int] = set()
    queue = deque(validated.dependents.get(action_id, []))
    while queue:
        node = queue.popleft()
        if node in found:
            continue
        found.add(node)
        queue.extend(validated.dependents.get(node, []))
    return sorted(found, key=lambda i: validated.rank[i])
