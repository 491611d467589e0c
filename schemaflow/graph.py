"""Schema graph — the version graph of one schema and path resolution over it.

Nodes are versions plus a synthetic root meaning "not installed yet".
Edges are migration steps. Root steps (no source) leave the root.

    (root) --[1.0.0]--> 1.0.0 --> 1.1.0 --> 2.0.0
                                    \\-------^  (shortcut 1.1.0 -> 2.0.0)

The latest version is the single sink reachable from the root. Paths are
found with a breadth-first search, so the path with the fewest steps wins.
Two equally short paths to the latest version are a configuration error,
never a coin toss.
"""

from __future__ import annotations

import logging
from typing import Iterable

from packaging.version import Version

from schemaflow.exceptions import (
    AlreadyLatest,
    AmbiguousLatestVersion,
    AmbiguousPath,
    CyclicMigrationGraph,
    DuplicateStepError,
    InvalidStepError,
    NoInstallPath,
    NoStepsFound,
    NoUpgradePath,
    StepNotFound,
    VersionNotFound,
)
from schemaflow.step import MigrationStep
from schemaflow.types import SchemaName, parse_optional_version, parse_version

_logger = logging.getLogger(__name__)

# The root node. Root steps have source None, so their edges leave this key.
ROOT = None

_VISITING = 1
_VISITED = 2
_EXHAUSTED = object()

Node = Version | None


class SchemaGraph:
    """Directed version graph for a single schema.

    The graph is validated on construction: duplicate edges, cycles and
    steps that do not move forward are rejected immediately.
    """

    def __init__(self, schema_name: SchemaName, steps: Iterable[MigrationStep]):
        self.schema_name = schema_name
        self._steps = list(steps)
        if not self._steps:
            raise NoStepsFound(f"No migration steps found for schema '{schema_name}'")

        self._nodes: set[Version] = set()
        self._outgoing: dict[Node, list[MigrationStep]] = {}
        self._by_edge: dict[tuple[Node, Version], MigrationStep] = {}

        for step in self._steps:
            if step.edge in self._by_edge:
                raise DuplicateStepError(
                    f"Schema '{schema_name}' declares the step "
                    f"{step.describe()} more than once"
                )
            self._by_edge[step.edge] = step
            self._outgoing.setdefault(step.source, []).append(step)
            if step.source is not None:
                self._nodes.add(step.source)
            self._nodes.add(step.target)

        # Deterministic traversal order
        for edges in self._outgoing.values():
            edges.sort(key=lambda s: s.target)

        self._check_cycles()
        self._check_direction()
        self._latest: Version | None = None

    # ── Introspection ───────────────────────────────────────────────

    @property
    def steps(self) -> list[MigrationStep]:
        return list(self._steps)

    @property
    def versions(self) -> list[Version]:
        return sorted(self._nodes)

    @property
    def has_install_path(self) -> bool:
        """True when at least one root step exists."""
        return bool(self._outgoing.get(ROOT))

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, version: object) -> bool:
        try:
            return parse_version(version) in self._nodes  # type: ignore[arg-type]
        except ValueError:
            return False

    def __repr__(self) -> str:
        return f"<SchemaGraph {self.schema_name!r} steps={len(self._steps)}>"

    # ── Resolution ──────────────────────────────────────────────────

    def latest_version(self) -> Version:
        """The single sink reachable from the root.

        A schema without root steps is upgrade-only; its sinks are taken
        from the whole graph instead.
        """
        if self._latest is None:
            if self.has_install_path:
                candidates = self._reachable(ROOT)
            else:
                candidates = self._nodes
            sinks = sorted(n for n in candidates if not self._outgoing.get(n))
            if len(sinks) != 1:
                found = ", ".join(str(s) for s in sinks) or "none"
                raise AmbiguousLatestVersion(
                    f"Schema '{self.schema_name}' has no single latest version "
                    f"(candidates: {found})"
                )
            self._latest = sinks[0]
        return self._latest

    def path_from_root(self) -> list[MigrationStep]:
        """Steps for a fresh install, root first."""
        if not self.has_install_path:
            raise NoInstallPath(
                f"Schema '{self.schema_name}' has no step without a source version"
            )
        return self._shortest_path(ROOT)

    def path_from(self, installed: Version | str) -> list[MigrationStep]:
        """Steps from an installed version up to the latest one.

        Raises AlreadyLatest when there is nothing to do.
        """
        version = parse_version(installed)
        if version not in self._nodes:
            raise VersionNotFound(
                f"Version {version} is unknown to schema '{self.schema_name}'"
            )
        if version == self.latest_version():
            raise AlreadyLatest(self.schema_name, version)
        return self._shortest_path(version)

    def find_step(
        self, source: Version | str | None, target: Version | str
    ) -> MigrationStep:
        edge = (parse_optional_version(source), parse_version(target))
        step = self._by_edge.get(edge)
        if step is None:
            start = edge[0] if edge[0] is not None else "nothing"
            raise StepNotFound(
                f"Schema '{self.schema_name}' has no step from {start} to {edge[1]}"
            )
        return step

    # ── Internals ───────────────────────────────────────────────────

    def _successors(self, node: Node) -> list[Version]:
        return [step.target for step in self._outgoing.get(node, ())]

    def _reachable(self, start: Node) -> set[Version]:
        seen: set[Version] = set()
        frontier = self._successors(start)
        while frontier:
            node = frontier.pop()
            if node in seen:
                continue
            seen.add(node)
            frontier.extend(self._successors(node))
        return seen

    def _check_cycles(self) -> None:
        state: dict[Node, int] = {}
        starts: list[Node] = [ROOT, *sorted(self._nodes)]
        for start in starts:
            if start in state:
                continue
            state[start] = _VISITING
            stack = [(start, iter(self._successors(start)))]
            while stack:
                node, children = stack[-1]
                child = next(children, _EXHAUSTED)
                if child is _EXHAUSTED:
                    state[node] = _VISITED
                    stack.pop()
                    continue
                mark = state.get(child)
                if mark == _VISITING:
                    loop = [str(n) for n, _ in stack if n is not ROOT]
                    loop_from = loop.index(str(child)) if str(child) in loop else 0
                    cycle = " -> ".join(loop[loop_from:] + [str(child)])
                    raise CyclicMigrationGraph(
                        f"Schema '{self.schema_name}' has a cycle: {cycle}"
                    )
                if mark is None:
                    state[child] = _VISITING
                    stack.append((child, iter(self._successors(child))))

    def _check_direction(self) -> None:
        for step in self._steps:
            if step.source is not None and step.target <= step.source:
                raise InvalidStepError(
                    f"Step {step.describe()} does not move schema "
                    f"'{self.schema_name}' forward"
                )

    def _shortest_path(self, start: Node) -> list[MigrationStep]:
        goal = self.latest_version()
        distance: dict[Node, int] = {start: 0}
        path_count: dict[Node, int] = {start: 1}
        via: dict[Version, MigrationStep] = {}

        # Level by level; the whole level that first reaches the goal is
        # processed so every equally short path is counted.
        frontier: list[Node] = [start]
        while frontier and goal not in distance:
            next_frontier: list[Node] = []
            for node in frontier:
                for step in self._outgoing.get(node, ()):
                    child = step.target
                    if child not in distance:
                        distance[child] = distance[node] + 1
                        path_count[child] = path_count[node]
                        via[child] = step
                        next_frontier.append(child)
                    elif distance[child] == distance[node] + 1:
                        path_count[child] = min(2, path_count[child] + path_count[node])
            frontier = next_frontier

        start_label = str(start) if start is not ROOT else "nothing"
        if goal not in distance:
            raise NoUpgradePath(
                f"Schema '{self.schema_name}' has no path from {start_label} to {goal}"
            )
        if path_count[goal] > 1:
            raise AmbiguousPath(
                f"Schema '{self.schema_name}' has several equally short paths "
                f"from {start_label} to {goal}"
            )

        path: list[MigrationStep] = []
        node: Node = goal
        while node != start:
            step = via[node]  # type: ignore[index]
            path.append(step)
            node = step.source
        path.reverse()
        _logger.debug(
            "Resolved %d step(s) for schema %s from %s to %s",
            len(path), self.schema_name, start_label, goal,
        )
        return path
