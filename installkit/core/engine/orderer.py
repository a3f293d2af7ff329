"""
Engine — Unit dependency ordering (pure).

Reorders the additions in a provisioning plan so that every unit comes
after the units it requires. Removals are not reordered; they keep
their relative order and follow the additions.

Only edges between units that are both being added count, and a
requirement contributes an edge only when exactly one other candidate
satisfies it. Several matches usually mean a platform-fragment
relationship rather than a real ordering constraint, so they are
ignored. A cycle makes the sort give up and keep the additions in
their original order.

No I/O.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Callable, Sequence

from installkit.core.errors import CycleDetectedError
from installkit.core.models.plan import PlanOperation, Requirement, Unit

logger = logging.getLogger(__name__)

# (requirement, candidate unit) -> does the candidate satisfy it?
RequirementMatcher = Callable[[Requirement, Unit], bool]


def default_matcher(requirement: Requirement, unit: Unit) -> bool:
    return requirement.matches(unit)


def _build_edges(
    units: list[Unit],
    matches: RequirementMatcher,
) -> tuple[list[list[int]], list[set[int]]]:
    """Build the requirement graph over candidate indices.

    Returns:
        ``(dependents, prerequisites)``: ``dependents[i]`` lists the
        candidates that require ``i``; ``prerequisites[i]`` is the set
        of candidates ``i`` still waits for.
    """
    dependents: list[list[int]] = [[] for _ in units]
    prerequisites: list[set[int]] = [set() for _ in units]

    for index, unit in enumerate(units):
        for requirement in unit.requirements:
            candidates = [
                other
                for other, candidate in enumerate(units)
                if other != index and matches(requirement, candidate)
            ]
            if len(candidates) != 1:
                continue
            required = candidates[0]
            if required not in prerequisites[index]:
                prerequisites[index].add(required)
                dependents[required].append(index)

    return dependents, prerequisites


def _topological_order(units: list[Unit], matches: RequirementMatcher) -> list[int]:
    """Kahn's algorithm over candidate indices.

    Ties are broken by original position, so an already-valid order
    comes back unchanged.

    Raises:
        CycleDetectedError: If some candidate never becomes ready.
    """
    dependents, prerequisites = _build_edges(units, matches)

    ready = [i for i, waiting in enumerate(prerequisites) if not waiting]
    heapq.heapify(ready)
    ordered: list[int] = []

    while ready:
        node = heapq.heappop(ready)
        ordered.append(node)
        for dependent in dependents[node]:
            prerequisites[dependent].discard(node)
            if not prerequisites[dependent]:
                heapq.heappush(ready, dependent)

    if len(ordered) < len(units):
        stuck = [units[i].id for i, waiting in enumerate(prerequisites) if waiting]
        raise CycleDetectedError(f"Dependency cycle among units: {', '.join(stuck)}")

    return ordered


def order_plan(
    operations: Sequence[PlanOperation],
    matches: RequirementMatcher = default_matcher,
) -> list[PlanOperation]:
    """Order a provisioning plan so dependencies are installed first.

    Args:
        operations: The plan, as produced by the provisioning agent.
        matches: Requirement satisfaction predicate.

    Returns:
        Sorted additions and updates, followed by the removals in
        their original relative order.
    """
    removals = [op for op in operations if op.is_removal]
    additions = [op for op in operations if not op.is_removal]

    units = [op.target for op in additions]
    try:
        order = _topological_order(units, matches)
    except CycleDetectedError as e:
        logger.warning("%s — keeping original plan order", e.message)
        order = list(range(len(additions)))

    return [additions[i] for i in order] + removals
