"""Dependency graph over a catalog and Kahn-style cycle detection.

Edges point from dependency to dependent: ``a -> c`` means c's formula
references a, so a must be resolved before c.  Names that are referenced
but not defined still appear as nodes; ``engine.check_catalog`` reports
them separately.
"""

from __future__ import annotations

from collections import deque
from typing import Mapping

from formulify.formulas.catalog import NamedExpression
from formulify.formulas.lexer import TokenKind, tokenize

DependencyGraph = dict[str, set[str]]


def build_dependency_graph(catalog: Mapping[str, NamedExpression]) -> DependencyGraph:
    """Build the dependency -> dependent adjacency map for *catalog*.

    Every catalog name gets a node, even with no edges.  A leaf formula
    (``a = "a"``) contributes no edge; any other self-reference
    (``a = "a + 1"``) is a self-edge and therefore a cycle.

    Raises:
        LexError: If a formula contains an invalid character.
    """
    graph: DependencyGraph = {name: set() for name in catalog}
    for name, expr in catalog.items():
        if expr.is_leaf:
            continue
        for tok in tokenize(expr.formula):
            if tok.kind is TokenKind.IDENT:
                graph.setdefault(tok.text, set()).add(name)
    return graph


def _in_degrees(graph: DependencyGraph) -> dict[str, int]:
    degrees = {node: 0 for node in graph}
    for node in graph:
        for dependent in graph[node]:
            degrees[dependent] = degrees.get(dependent, 0) + 1
    return degrees


def topological_order(graph: DependencyGraph) -> list[str]:
    """Kahn's algorithm: every node after all of its prerequisites.

    Nodes caught in a cycle never reach zero in-degree and are absent from
    the result.  Ties are broken by node insertion order, then by name.
    """
    degrees = _in_degrees(graph)
    queue = deque(node for node, deg in degrees.items() if deg == 0)
    order: list[str] = []
    while queue:
        node = queue.popleft()
        order.append(node)
        for dependent in sorted(graph.get(node, ())):
            degrees[dependent] -= 1
            if degrees[dependent] == 0:
                queue.append(dependent)
    return order


def has_cycle(graph: DependencyGraph) -> bool:
    """Return True if *graph* has a cycle (Kahn's order is incomplete)."""
    return len(topological_order(graph)) < len(_in_degrees(graph))


def cyclic_names(graph: DependencyGraph) -> list[str]:
    """Names left unresolved by Kahn's algorithm, sorted."""
    resolved = set(topological_order(graph))
    return sorted(node for node in _in_degrees(graph) if node not in resolved)


def independent_names(graph: DependencyGraph) -> list[str]:
    """Nodes with zero in-degree: names that depend on nothing else."""
    return [node for node, deg in _in_degrees(graph).items() if deg == 0]
