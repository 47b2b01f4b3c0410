"""
Execution planning: run-mode selection and level scheduling.

A plan is an ordered list of levels. Every model in a level depends only
on models in earlier levels, so a level is a batch that can run
concurrently.
"""

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from manifold.exceptions import CycleError, TargetNotFoundError
from manifold.utils.logging import get_logger

if TYPE_CHECKING:
    from manifold.core.dependencies import DependencyGraph

logger = get_logger("manifold.plan")


def build_levels(dependency_map: Mapping[str, Sequence[str]]) -> list[list[str]]:
    """
    Peel the dependency map into execution levels.

    Each pass collects every unscheduled node whose dependencies are all
    scheduled. Dependencies outside the map are treated as satisfied.
    Members of a level are sorted by name.

    Raises:
        CycleError: If nodes remain but none can be scheduled
    """
    remaining = set(dependency_map)
    scheduled: set[str] = set()
    levels: list[list[str]] = []

    while remaining:
        ready = sorted(
            name
            for name in remaining
            if all(dep in scheduled or dep not in dependency_map for dep in dependency_map[name])
        )
        if not ready:
            stuck = sorted(remaining)
            raise CycleError(
                f"Cannot schedule models, dependency cycle among: {', '.join(stuck)}",
                cycle=stuck,
            )
        levels.append(ready)
        scheduled.update(ready)
        remaining.difference_update(ready)

    return levels


def render_mermaid(dependency_map: Mapping[str, Sequence[str]], kinds: Mapping[str, str]) -> str:
    """Mermaid flowchart: ``name["name (kind)"]`` nodes, ``dependency --> dependent`` edges."""
    lines = ["graph TD"]
    for name in dependency_map:
        kind = kinds.get(name)
        label = f"{name} ({kind})" if kind else name
        lines.append(f'    {name}["{label}"]')
    for name, deps in dependency_map.items():
        for dep in deps:
            if dep in dependency_map:
                lines.append(f"    {dep} --> {name}")
    return "\n".join(lines)


@dataclass(frozen=True)
class ExecutionPlan:
    """
    Ordered levels of model names.

    Attributes:
        stages: Levels in execution order
        dependencies: Dependency map restricted to the planned models
        kinds: Materialization type per planned model
    """

    stages: list[list[str]]
    dependencies: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    kinds: Mapping[str, str] = field(default_factory=dict)

    @property
    def total_models(self) -> int:
        return sum(len(level) for level in self.stages)

    @property
    def model_names(self) -> list[str]:
        """All planned models, level by level."""
        return [name for level in self.stages for name in level]

    def level_of(self, name: str) -> int:
        for index, level in enumerate(self.stages):
            if name in level:
                return index
        raise KeyError(name)

    def __iter__(self) -> Iterator[list[str]]:
        return iter(self.stages)

    def __len__(self) -> int:
        return len(self.stages)

    def to_string(self) -> str:
        if not self.stages:
            return "(empty plan)"
        return "\n".join(f"Stage {i}: {', '.join(level)}" for i, level in enumerate(self.stages, start=1))

    def __str__(self) -> str:
        return self.to_string()

    def to_diagram(self) -> str:
        return render_mermaid(self.dependencies, self.kinds)


def select_models(
    graph: "DependencyGraph",
    targets: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
) -> list[str]:
    """
    Resolve run-mode selection to the set of models to plan.

    - full: no targets and no exclusions, every registered model
    - targeted: the targets plus their transitive dependencies
    - exclusion: excluded names are dropped; with targets, the dependency
      walk stops at an excluded model, so its own dependencies are only
      selected when another selected model needs them

    Returns:
        Selected names in discovery order

    Raises:
        TargetNotFoundError: If a target is not registered
    """
    excluded = set(exclude or ())
    for name in sorted(excluded - set(graph.models)):
        logger.warning(f"Excluded model '{name}' is not registered, ignoring")

    if targets:
        targets = list(targets)
        for target in targets:
            if target not in graph.models:
                raise TargetNotFoundError(target)
        selected = graph.transitive_dependencies(targets, stop_at=excluded)
    else:
        selected = set(graph.models) - excluded

    return [name for name in graph.models if name in selected]


def create_plan(
    graph: "DependencyGraph",
    targets: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
) -> ExecutionPlan:
    """Select models and schedule them into levels."""
    names = select_models(graph, targets, exclude)
    dependency_map = graph.dependency_map(names)
    return ExecutionPlan(
        stages=build_levels(dependency_map),
        dependencies=dependency_map,
        kinds={name: graph.models[name].materialize.type for name in names},
    )
