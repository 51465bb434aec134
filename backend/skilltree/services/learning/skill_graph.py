"""
Skill Graph

Static, read-only view of the curriculum: units, skill nodes, ordering and
prerequisite edges, plus the unlock rule.

A node is unlocked for a learner iff it has no prerequisites, or every
prerequisite has progress at level 1 or higher. Unlock state is always
computed from current progress and never stored, so prerequisites added
to the catalog later re-evaluate correctly.

Usage:
    from skilltree.services.learning.skill_graph import get_skill_graph

    graph = get_skill_graph()
    graph.is_unlocked("heat-1a-2", {"heat-1a-1": 1})  # True
"""

from collections.abc import Mapping
from functools import lru_cache
from typing import Optional

from skilltree.config import load_curriculum
from skilltree.middleware.error_handling import NotFoundError
from skilltree.models.curriculum import Curriculum, SkillNode, SkillUnit

UNLOCK_LEVEL = 1


class SkillGraph:
    """
    Indexed curriculum graph.

    Validates on construction that every prerequisite names a known node,
    every node names a known unit, and prerequisites contain no cycles.
    """

    def __init__(self, curriculum: Curriculum):
        self.curriculum = curriculum
        self._units: dict[str, SkillUnit] = {u.id: u for u in curriculum.units}
        ordered = sorted(curriculum.nodes, key=lambda n: (n.order, n.id))
        self._nodes: dict[str, SkillNode] = {n.id: n for n in ordered}

        if len(self._nodes) != len(curriculum.nodes):
            raise ValueError("Duplicate skill node ids in curriculum")

        self._by_unit: dict[str, list[SkillNode]] = {u: [] for u in self._units}
        for node in ordered:
            if node.unit_id not in self._units:
                raise ValueError(f"Node {node.id} references unknown unit {node.unit_id}")
            for prereq in node.prerequisites:
                if prereq not in self._nodes:
                    raise ValueError(f"Node {node.id} references unknown prerequisite {prereq}")
            self._by_unit[node.unit_id].append(node)

        self._check_acyclic()

    def _check_acyclic(self) -> None:
        visiting: set[str] = set()
        done: set[str] = set()

        def visit(node_id: str) -> None:
            if node_id in done:
                return
            if node_id in visiting:
                raise ValueError(f"Prerequisite cycle through {node_id}")
            visiting.add(node_id)
            for prereq in self._nodes[node_id].prerequisites:
                visit(prereq)
            visiting.discard(node_id)
            done.add(node_id)

        for node_id in self._nodes:
            visit(node_id)

    # ===========================================
    # Lookup
    # ===========================================

    @property
    def units(self) -> list[SkillUnit]:
        return list(self._units.values())

    @property
    def nodes(self) -> list[SkillNode]:
        """All nodes in display order."""
        return list(self._nodes.values())

    def get_node(self, node_id: str) -> Optional[SkillNode]:
        return self._nodes.get(node_id)

    def require_node(self, node_id: str) -> SkillNode:
        """
        Get a node or fail.

        Raises:
            NotFoundError: If the id is not in the catalog.
        """
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFoundError(
                f"Skill node not found: {node_id}",
                details={"skill_node_id": node_id},
            )
        return node

    def get_unit(self, unit_id: str) -> Optional[SkillUnit]:
        return self._units.get(unit_id)

    def nodes_in_unit(self, unit_id: str) -> list[SkillNode]:
        return list(self._by_unit.get(unit_id, []))

    # ===========================================
    # Unlock Rule
    # ===========================================

    def unmet_prerequisites(self, node_id: str, levels: Mapping[str, int]) -> list[str]:
        """
        Prerequisites of a node the learner has not yet reached level 1 on.

        Args:
            node_id: Node to check.
            levels: Learner's current level per node id. Missing ids count as
                no progress.

        Returns:
            Prerequisite ids still blocking the node, in catalog order.
        """
        node = self.require_node(node_id)
        return [p for p in node.prerequisites if levels.get(p, 0) < UNLOCK_LEVEL]

    def is_unlocked(self, node_id: str, levels: Mapping[str, int]) -> bool:
        return not self.unmet_prerequisites(node_id, levels)


@lru_cache()
def get_skill_graph() -> SkillGraph:
    """Graph for the shipped curriculum (singleton)."""
    return SkillGraph(load_curriculum())
