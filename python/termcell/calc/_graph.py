"""Dependency graph for formula cells with topological ordering."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from termcell._address import CellAddress


class DependencyGraph:
    """Tracks formula cell dependencies for evaluation ordering.

    Two adjacency views are kept consistent on every change: ``precedents``
    (cell -> cells it reads) and ``dependents`` (cell -> cells reading it).
    Only cells that currently hold a formula appear as keys of
    ``precedents``.
    """

    __slots__ = ("precedents", "dependents")

    def __init__(self) -> None:
        # cell -> set of cells it reads from
        self.precedents: dict[CellAddress, set[CellAddress]] = {}
        # cell -> set of cells that read from it (reverse edges)
        self.dependents: dict[CellAddress, set[CellAddress]] = {}

    def __contains__(self, cell: object) -> bool:
        return cell in self.precedents

    def set_precedents(
        self, cell: CellAddress, refs: Iterable[CellAddress],
    ) -> tuple[set[CellAddress], set[CellAddress]]:
        """Replace a formula cell's precedents, diffing against the old set.

        Returns ``(added, removed)``.
        """
        new = set(refs)
        old = self.precedents.get(cell, set())
        added = new - old
        removed = old - new

        for ref in removed:
            self._unlink(ref, cell)
        for ref in added:
            if ref not in self.dependents:
                self.dependents[ref] = set()
            self.dependents[ref].add(cell)

        self.precedents[cell] = new
        return added, removed

    def remove(self, cell: CellAddress) -> set[CellAddress]:
        """Drop a cell's outgoing edges (it no longer holds a formula).

        Edges from cells that read *cell* are kept: those formulas still
        reference the address.  Returns the removed precedents.
        """
        old = self.precedents.pop(cell, set())
        for ref in old:
            self._unlink(ref, cell)
        return old

    def _unlink(self, ref: CellAddress, cell: CellAddress) -> None:
        deps = self.dependents.get(ref)
        if deps is None:
            return
        deps.discard(cell)
        if not deps:
            del self.dependents[ref]

    def dependents_closure(self, cells: Iterable[CellAddress]) -> set[CellAddress]:
        """*cells* plus every cell reachable through dependents edges (BFS)."""
        visited: set[CellAddress] = set(cells)
        queue: deque[CellAddress] = deque(visited)
        while queue:
            cell = queue.popleft()
            for dep in self.dependents.get(cell, ()):
                if dep not in visited:
                    visited.add(dep)
                    queue.append(dep)
        return visited

    def topological_order(
        self, cells: Iterable[CellAddress],
    ) -> tuple[list[CellAddress], set[CellAddress]]:
        """Order formula cells in *cells* so precedents come first (Kahn's algorithm).

        Only edges between members of *cells* count.  Returns
        ``(order, blocked)``: ``blocked`` holds the cells that could not be
        ordered because they sit on, or downstream of, a cycle.
        """
        subset = {c for c in cells if c in self.precedents}
        if not subset:
            return [], set()

        in_degree: dict[CellAddress, int] = {
            cell: len(self.precedents[cell] & subset) for cell in subset
        }

        # Sorted seeds keep the order deterministic between runs.
        queue: deque[CellAddress] = deque(sorted(c for c in subset if in_degree[c] == 0))
        order: list[CellAddress] = []
        while queue:
            cell = queue.popleft()
            order.append(cell)
            for dep in sorted(self.dependents.get(cell, ())):
                if dep in subset:
                    in_degree[dep] -= 1
                    if in_degree[dep] == 0:
                        queue.append(dep)

        blocked = subset - set(order)
        return order, blocked

    def find_cycles(self, cells: Iterable[CellAddress]) -> list[set[CellAddress]]:
        """Strongly connected components of *cells* that form a cycle.

        Iterative Tarjan over the precedents edges restricted to *cells*; a
        component counts when it has more than one member or a self-loop.
        """
        subset = set(cells)
        index_of: dict[CellAddress, int] = {}
        low: dict[CellAddress, int] = {}
        on_stack: set[CellAddress] = set()
        stack: list[CellAddress] = []
        cycles: list[set[CellAddress]] = []
        counter = 0

        def successors(cell: CellAddress) -> list[CellAddress]:
            return sorted(p for p in self.precedents.get(cell, ()) if p in subset)

        for root in sorted(subset):
            if root in index_of:
                continue
            work: list[tuple[CellAddress, int]] = [(root, 0)]
            while work:
                cell, child_idx = work.pop()
                if child_idx == 0:
                    index_of[cell] = low[cell] = counter
                    counter += 1
                    stack.append(cell)
                    on_stack.add(cell)
                children = successors(cell)
                if child_idx < len(children):
                    work.append((cell, child_idx + 1))
                    child = children[child_idx]
                    if child not in index_of:
                        work.append((child, 0))
                    elif child in on_stack:
                        low[cell] = min(low[cell], index_of[child])
                    continue
                # All children done: fold lowlinks back into the parent.
                if low[cell] == index_of[cell]:
                    component: set[CellAddress] = set()
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.add(member)
                        if member == cell:
                            break
                    if len(component) > 1 or cell in self.precedents.get(cell, ()):
                        cycles.append(component)
                if work:
                    parent = work[-1][0]
                    low[parent] = min(low[parent], low[cell])
        return cycles

    def max_depth(self, roots: Iterable[CellAddress]) -> int:
        """Longest dependency chain from root cells through formula cells."""
        roots = set(roots)
        if not roots:
            return 0

        depth: dict[CellAddress, int] = {r: 0 for r in roots}
        queue: deque[CellAddress] = deque(roots)
        max_d = 0
        # Bounded so a cycle cannot keep raising depths forever.
        limit = len(self.precedents) + 1

        while queue:
            cell = queue.popleft()
            current_depth = depth[cell]
            if current_depth >= limit:
                continue
            for dep in self.dependents.get(cell, ()):
                if dep in self.precedents:
                    new_depth = current_depth + 1
                    if dep not in depth or new_depth > depth[dep]:
                        depth[dep] = new_depth
                        max_d = max(max_d, new_depth)
                        queue.append(dep)

        return max_d
