"""
Project - the assembled, validated model graph.

Example::

    project = Project("analytics", [daily_metrics], store=MongoStore.connect(uri, "analytics"))
    print(project.plan())
    result = project.run(targets=["daily_metrics"])
"""

import time
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from manifold.connections.base import Store
from manifold.core.dependencies import DependencyGraph, discover
from manifold.core.executor import Executor, ModelRunStats, RunCallbacks, RunResult
from manifold.core.model import Model
from manifold.core.plan import ExecutionPlan, create_plan
from manifold.core.validation import ValidationResult, validate_graph
from manifold.exceptions import ConfigurationError, EphemeralReferenceError
from manifold.utils.async_utils import dual
from manifold.utils.logging import format_duration, get_logger

logger = get_logger("manifold.project")


class Project:
    """
    A validated, immutable set of models forming a DAG.

    Construction discovers every transitive dependency of ``models`` and
    validates the result; any structural error raises immediately.

    Args:
        name: Project name
        models: Root models
        default_database: Database used when a run passes none
        store: Default store for ``run()``
        auto_discover: When False, only ``models`` are registered and any
            dependency outside them is reported as a missing reference
        config: Loaded configuration (``executor.max_workers`` is read from it)

    Raises:
        ConfigurationError: Duplicate names or missing references
        CycleError: The graph contains a cycle
        EphemeralReferenceError: An ephemeral model is embedded in another model's stages
    """

    __slots__ = ("_name", "_graph", "_default_database", "_store", "_config")

    def __init__(
        self,
        name: str = "default",
        models: Iterable[Model] = (),
        *,
        default_database: str | None = None,
        store: Store | None = None,
        auto_discover: bool = True,
        config: Any = None,
    ):
        self._init(name, discover(models, follow=auto_discover), default_database, store, config)

    def _init(
        self,
        name: str,
        graph: DependencyGraph,
        default_database: str | None,
        store: Store | None,
        config: Any,
    ) -> None:
        object.__setattr__(self, "_name", name)
        object.__setattr__(self, "_graph", graph)
        object.__setattr__(self, "_default_database", default_database)
        object.__setattr__(self, "_store", store)
        object.__setattr__(self, "_config", config)

        result = self.validate()
        for warning in result.warnings:
            logger.warning(f"Project '{name}': {warning.message}")
        result.raise_for_errors()

        for referrer, ephemeral in graph.ephemeral_references():
            raise EphemeralReferenceError(ephemeral, referrer)

        logger.debug(f"Project '{name}' registered {len(graph)} model(s): {', '.join(graph.models)}")

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError(f"Project is immutable; use with_models() to derive a new one (tried to set '{key}')")

    @classmethod
    def from_config(cls, config: Any, models: Iterable[Model] = (), **kwargs: Any) -> "Project":
        """
        Build a project whose store and default database come from configuration.

        Reads ``name``, ``connection.uri`` and ``connection.database``.
        """
        from manifold.connections.mongo import MongoStore

        kwargs.setdefault("store", MongoStore.from_config(config))
        kwargs.setdefault("default_database", config.get("connection.database"))
        return cls(config.get("name", "default"), models, config=config, **kwargs)

    def with_models(self, *models: Model) -> "Project":
        """A new project with additional root models; this one is unchanged."""
        project = object.__new__(Project)
        project._init(
            self._name,
            self._graph.with_models(*models),
            self._default_database,
            self._store,
            self._config,
        )
        return project

    @property
    def name(self) -> str:
        return self._name

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    @property
    def models(self) -> tuple[Model, ...]:
        """Registered models in discovery order."""
        return tuple(self._graph.models.values())

    @property
    def default_database(self) -> str | None:
        return self._default_database

    def get(self, name: str, default: Model | None = None) -> Model | None:
        return self._graph.models.get(name, default)

    def __contains__(self, name: object) -> bool:
        return name in self._graph

    def __len__(self) -> int:
        return len(self._graph)

    def __repr__(self) -> str:
        return f"Project(name={self._name!r}, models={list(self._graph.models)!r})"

    def validate(self) -> ValidationResult:
        """Re-check the graph; never raises."""
        return validate_graph(self._graph)

    def plan(self, targets: Sequence[str] | None = None, exclude: Sequence[str] | None = None) -> ExecutionPlan:
        """
        Compute the execution plan for a selection of models.

        Raises:
            TargetNotFoundError: If a target is not registered
        """
        return create_plan(self._graph, targets, exclude)

    def to_diagram(self) -> str:
        """Mermaid diagram of the whole project."""
        return self._graph.to_mermaid()

    @dual
    async def run(
        self,
        targets: Sequence[str] | None = None,
        exclude: Sequence[str] | None = None,
        dry_run: bool = False,
        store: Store | None = None,
        database: str | None = None,
        on_model_start: Callable[[str], Any] | None = None,
        on_model_complete: Callable[[str, ModelRunStats], Any] | None = None,
        on_model_error: Callable[[str, Exception], Any] | None = None,
    ) -> RunResult:
        """
        Execute the selected models level by level.

        Works both as ``project.run()`` and ``await project.run()``. Model
        failures are reported on the result, never raised.

        Args:
            targets: Run only these models and their dependencies
            exclude: Leave these models out of the run
            dry_run: Compute and log the plan without touching the store
            store: Store override for this run
            database: Default database override for this run
            on_model_start: Called with the model name before it runs
            on_model_complete: Called with the name and its ``ModelRunStats``
            on_model_error: Called with the name and the wrapped error

        Raises:
            TargetNotFoundError: If a target is not registered
            ConfigurationError: If no store is available for a real run
        """
        start_time = time.perf_counter()
        execution_plan = self.plan(targets, exclude)

        if dry_run:
            logger.info(f"Dry run - execution plan:\n{execution_plan.to_string()}")
            return RunResult(
                success=True,
                plan=execution_plan,
                dry_run=True,
                total_duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        store = store or self._store
        if store is None:
            raise ConfigurationError(
                f"Project '{self._name}' has no store: pass store= to run() or create the project with one"
            )

        logger.info(
            f"Running project '{self._name}': {execution_plan.total_models} model(s) "
            f"in {len(execution_plan)} level(s)"
        )
        executor = Executor(store, self._config, database or self._default_database)
        try:
            result = await executor.execute(
                execution_plan,
                self._graph,
                RunCallbacks(on_model_start, on_model_complete, on_model_error),
            )
        finally:
            executor.shutdown()

        result.total_duration_ms = (time.perf_counter() - start_time) * 1000
        summary = (
            f"{len(result.models_run)} succeeded, {len(result.models_failed)} failed "
            f"in {format_duration(result.total_duration_ms / 1000)}"
        )
        if result.success:
            logger.info(f"Project '{self._name}' completed: {summary}")
        else:
            logger.error(f"Project '{self._name}' failed: {summary} ({', '.join(result.models_failed)})")
        return result

    def close(self) -> None:
        """Close the project's default store."""
        if self._store is not None:
            self._store.close()
