"""
Dependency graph discovery and queries.

The graph is discovered once from root models and never mutated; adding
models produces a new snapshot via ``with_models``.
"""

from collections import deque
from collections.abc import Iterable, Mapping, Sequence
from types import MappingProxyType
from typing import TYPE_CHECKING

from manifold.core.plan import build_levels, render_mermaid
from manifold.exceptions import ConfigurationError

if TYPE_CHECKING:
    from manifold.core.model import Model


class DependencyGraph:
    """
    Immutable directed graph of model dependencies.

    Attributes:
        models: name -> Model, in discovery order
        dependencies: name -> direct dependency names (``source`` edge first)
        duplicates: names reached through more than one distinct Model object
    """

    def __init__(
        self,
        models: Mapping[str, "Model"],
        dependencies: Mapping[str, Sequence[str]],
        duplicates: Sequence[str] = (),
        follow: bool = True,
    ):
        self.models: Mapping[str, Model] = MappingProxyType(dict(models))
        self.dependencies: Mapping[str, tuple[str, ...]] = MappingProxyType(
            {name: tuple(deps) for name, deps in dependencies.items()}
        )
        self.duplicates: tuple[str, ...] = tuple(duplicates)
        self.follow = follow

        reverse: dict[str, list[str]] = {name: [] for name in self.models}
        for name, deps in self.dependencies.items():
            for dep in deps:
                reverse.setdefault(dep, []).append(name)
        self._reverse: Mapping[str, tuple[str, ...]] = MappingProxyType(
            {name: tuple(dependents) for name, dependents in reverse.items()}
        )

    def __contains__(self, name: object) -> bool:
        return name in self.models

    def __len__(self) -> int:
        return len(self.models)

    def __repr__(self) -> str:
        return f"DependencyGraph(models={list(self.models)!r})"

    def get_dependencies(self, model_name: str) -> tuple[str, ...]:
        """Get dependencies for a model."""
        return self.dependencies.get(model_name, ())

    def get_dependents(self, model_name: str) -> tuple[str, ...]:
        """Get dependents (models that depend on this one)."""
        return self._reverse.get(model_name, ())

    def missing_references(self) -> list[tuple[str, str]]:
        """``(model, dependency)`` pairs whose dependency is not registered."""
        return [(name, dep) for name, deps in self.dependencies.items() for dep in deps if dep not in self.models]

    def ephemeral_references(self) -> list[tuple[str, str]]:
        """``(model, ephemeral)`` pairs where an ephemeral model is embedded in stages instead of used as source."""
        pairs = []
        for name, model in self.models.items():
            for ref in model.referenced_models():
                if ref.is_ephemeral:
                    pairs.append((name, ref.name))
        return pairs

    def transitive_dependencies(self, names: Iterable[str], stop_at: Iterable[str] = ()) -> set[str]:
        """
        The given names plus everything they transitively depend on.

        Names in ``stop_at`` are neither included nor walked through.
        """
        stop = set(stop_at)
        closure: set[str] = set()
        queue = deque(names)
        while queue:
            name = queue.popleft()
            if name in closure or name in stop:
                continue
            closure.add(name)
            queue.extend(dep for dep in self.get_dependencies(name) if dep in self.models)
        return closure

    def detect_cycle(self) -> list[str] | None:
        """
        Find the first dependency cycle.

        Depth-first search with an explicit recursion stack, visiting models
        in discovery order and dependencies in declaration order.

        Returns:
            The cycle as a closed path (``["a", "b", "a"]``), or None
        """
        visited: set[str] = set()
        rec_stack: set[str] = set()
        path: list[str] = []

        def dfs(node: str) -> list[str] | None:
            visited.add(node)
            rec_stack.add(node)
            path.append(node)

            for neighbor in self.get_dependencies(node):
                if neighbor not in self.models:
                    continue
                if neighbor not in visited:
                    found = dfs(neighbor)
                    if found:
                        return found
                elif neighbor in rec_stack:
                    cycle_start = path.index(neighbor)
                    return path[cycle_start:] + [neighbor]

            rec_stack.remove(node)
            path.pop()
            return None

        for node in self.models:
            if node not in visited:
                cycle = dfs(node)
                if cycle:
                    return cycle
        return None

    def dependency_map(self, names: Iterable[str] | None = None) -> dict[str, tuple[str, ...]]:
        """Dependency map restricted to ``names`` (all models by default), in discovery order."""
        if names is None:
            selected = set(self.models)
        else:
            selected = set(names)
        return {
            name: tuple(dep for dep in self.get_dependencies(name) if dep in selected)
            for name in self.models
            if name in selected
        }

    def subgraph(self, names: Iterable[str]) -> "DependencyGraph":
        """A graph over a subset of models, with edges leaving the subset dropped."""
        deps = self.dependency_map(names)
        return DependencyGraph(
            {name: self.models[name] for name in deps},
            deps,
            [name for name in self.duplicates if name in deps],
            follow=self.follow,
        )

    def get_layers(self) -> dict[str, int]:
        """
        Get layer (execution level) for each model.

        Returns a dictionary mapping model_name -> layer_number (0-based).
        Models in the same layer can run in parallel.

        Raises:
            CycleError: If the graph is not acyclic
        """
        return {name: index for index, level in enumerate(build_levels(self.dependency_map())) for name in level}

    def topological_sort(self) -> list[str]:
        """Models in execution order (dependencies before dependents)."""
        return [name for level in build_levels(self.dependency_map()) for name in level]

    def visualize_layers(self) -> str:
        """
        Visualize dependency graph as layers (execution levels).

        Models in the same layer can run in parallel.
        """
        lines = []
        for layer_num, layer_models in enumerate(build_levels(self.dependency_map())):
            lines.append(f"Layer {layer_num}: {' ── '.join(layer_models)}")
        return "\n".join(lines)

    def to_mermaid(self) -> str:
        return render_mermaid(
            self.dependency_map(),
            {name: model.materialize.type for name, model in self.models.items()},
        )

    def with_models(self, *models: "Model") -> "DependencyGraph":
        """A new graph discovered from the current models plus ``models``."""
        return discover([*self.models.values(), *models], follow=self.follow)


def discover(roots: Iterable["Model"], follow: bool = True) -> DependencyGraph:
    """
    Discover the dependency graph reachable from ``roots``.

    Walks breadth-first over the ``source`` edge and every model embedded in
    the stage tree (nested sub-pipelines included), registering each name at
    most once. A name reached through a second, distinct Model object is
    recorded as a duplicate rather than resolved.

    Args:
        roots: Root models
        follow: When False, only the roots are registered; unregistered
            dependencies then surface as missing references

    Raises:
        ConfigurationError: If a root is not a Model
    """
    models: dict[str, Model] = {}
    dependencies: dict[str, list[str]] = {}
    duplicates: list[str] = []

    queue: deque[Model] = deque()
    for root in roots:
        if getattr(root, "source_type", None) != "model":
            raise ConfigurationError(f"Project models must be Model instances, got {type(root).__name__}")
        queue.append(root)

    while queue:
        current = queue.popleft()
        registered = models.get(current.name)
        if registered is not None:
            if registered is not current and current.name not in duplicates:
                duplicates.append(current.name)
            continue

        models[current.name] = current
        deps = current.dependencies()
        dependencies[current.name] = list(dict.fromkeys(dep.name for dep in deps))
        if follow:
            queue.extend(deps)

    if not follow:
        # Same-named objects reached only as dependencies still count as duplicates
        for current in models.values():
            for dep in current.dependencies():
                registered = models.get(dep.name)
                if registered is not None and registered is not dep and dep.name not in duplicates:
                    duplicates.append(dep.name)

    return DependencyGraph(models, dependencies, duplicates, follow=follow)
