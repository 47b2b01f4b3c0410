"""
Level-synchronous model execution engine.

Levels run in order; every model in a level runs concurrently. Store calls
are blocking, so they are dispatched onto a thread pool and awaited.
"""

import asyncio
import inspect
import os
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from manifold.connections.base import Store
from manifold.core.dependencies import DependencyGraph
from manifold.core.model import Model
from manifold.core.plan import ExecutionPlan
from manifold.exceptions import ConfigurationError, ModelExecutionError
from manifold.materialization import get_materializer
from manifold.utils.logging import format_duration, get_logger

logger = get_logger("manifold.executor")


@dataclass(frozen=True)
class ModelRunStats:
    duration_ms: float


@dataclass(frozen=True)
class RunCallbacks:
    """
    Observability hooks for a run.

    Callbacks may be plain functions or coroutine functions. Their return
    values are ignored and an exception raised by one is logged, never
    propagated.
    """

    on_model_start: Callable[[str], Any] | None = None
    on_model_complete: Callable[[str, ModelRunStats], Any] | None = None
    on_model_error: Callable[[str, Exception], Any] | None = None


@dataclass
class RunResult:
    """
    Outcome of a run.

    Attributes:
        success: True when no model failed
        models_run: Models that completed, in completion order
        models_failed: Models whose execution raised
        stats: Per-model timing for completed models
        total_duration_ms: Wall-clock duration of the whole run
        errors: Wrapped failure per failed model
        plan: The plan that was executed (or only computed, for a dry run)
        dry_run: Whether the run was a dry run
        models_skipped: Planned models never started because an earlier level failed
    """

    success: bool = True
    models_run: list[str] = field(default_factory=list)
    models_failed: list[str] = field(default_factory=list)
    stats: dict[str, ModelRunStats] = field(default_factory=dict)
    total_duration_ms: float = 0.0
    errors: dict[str, ModelExecutionError] = field(default_factory=dict)
    plan: ExecutionPlan | None = None
    dry_run: bool = False
    models_skipped: list[str] = field(default_factory=list)


class Executor:
    """
    Executes an ``ExecutionPlan`` against a store.

    Attributes:
        store: Backing store shared by every task
        database: Default database for pipelines whose source names none
        thread_pool_size: Number of worker threads for store calls
    """

    DEFAULT_THREAD_POOL_SIZE = None  # None means auto-detect (use CPU count)

    def __init__(self, store: Store, config: Any = None, database: str | None = None):
        self.store = store
        self.database = database

        executor_config = (config.get("executor") if config is not None else None) or {}
        max_workers_config = executor_config.get("max_workers", self.DEFAULT_THREAD_POOL_SIZE)
        self.thread_pool_size = self._determine_thread_pool_size(max_workers_config)
        self.executor_pool = ThreadPoolExecutor(max_workers=self.thread_pool_size, thread_name_prefix="manifold")

    def _determine_thread_pool_size(self, max_workers: int | str | None) -> int:
        """
        Determine thread pool size from configuration.

        Store calls are I/O-bound, so the pool is larger than the CPU count.

        Args:
            max_workers: Configuration value - can be:
                - None or "auto": min(32, (CPU count * 2) + 4)
                - Integer: Use explicit value

        Returns:
            Integer thread pool size
        """
        if max_workers is None or (isinstance(max_workers, str) and max_workers.lower() == "auto"):
            cpu_count = os.cpu_count()
            if cpu_count is None:
                logger.warning("Could not determine CPU count, defaulting to 8 workers")
                return 8
            return min(32, (cpu_count * 2) + 4)
        elif isinstance(max_workers, int) and not isinstance(max_workers, bool):
            if max_workers <= 0:
                raise ConfigurationError(f"max_workers must be positive, got {max_workers}")
            return max_workers
        else:
            raise ConfigurationError(
                f"max_workers must be an integer, 'auto', or None, got {type(max_workers).__name__}: {max_workers}"
            )

    async def execute(
        self,
        plan: ExecutionPlan,
        graph: DependencyGraph,
        callbacks: RunCallbacks | None = None,
    ) -> RunResult:
        """
        Run a plan level by level.

        Ephemeral models are never dispatched. Failures are caught per model;
        once a level settles with any failure, later levels are not started.
        Completed levels are not rolled back.
        """
        callbacks = callbacks or RunCallbacks()
        result = RunResult(plan=plan)
        flow_start = time.perf_counter()

        for index, level in enumerate(plan.stages):
            runnable = [name for name in level if not graph.models[name].is_ephemeral]
            if len(runnable) < len(level):
                inlined = [name for name in level if name not in runnable]
                logger.debug(f"Skipping ephemeral model(s): {', '.join(inlined)}")
            if not runnable:
                continue

            logger.debug(f"Level {index + 1}/{len(plan.stages)}: {', '.join(runnable)}")
            await asyncio.gather(*(self._run_model(graph.models[name], callbacks, result) for name in runnable))

            if result.models_failed:
                result.models_skipped = [
                    name
                    for later in plan.stages[index + 1 :]
                    for name in later
                    if not graph.models[name].is_ephemeral
                ]
                if result.models_skipped:
                    logger.error(
                        f"Stopping after level {index + 1}: {len(result.models_skipped)} downstream model(s) "
                        f"not started ({', '.join(result.models_skipped)})"
                    )
                break

        result.success = not result.models_failed
        result.total_duration_ms = (time.perf_counter() - flow_start) * 1000
        return result

    async def _run_model(self, model: Model, callbacks: RunCallbacks, result: RunResult) -> None:
        """Materialise one model; records its outcome on ``result`` once the store call returns."""
        name = model.name
        await self._notify(callbacks.on_model_start, name)
        self._log_model_start(model)

        start_time = time.perf_counter()
        loop = asyncio.get_running_loop()
        try:
            materializer = get_materializer(model.materialize)
            await loop.run_in_executor(self.executor_pool, materializer.materialise, self.store, model, self.database)
        except Exception as e:
            duration = time.perf_counter() - start_time
            error = e if isinstance(e, ModelExecutionError) else ModelExecutionError(name, str(e), cause=e)
            self._log_model_end(model, False, duration, error=str(e))
            result.models_failed.append(name)
            result.errors[name] = error
            await self._notify(callbacks.on_model_error, name, error)
            return

        duration = time.perf_counter() - start_time
        stats = ModelRunStats(duration_ms=duration * 1000)
        result.models_run.append(name)
        result.stats[name] = stats
        self._log_model_end(model, True, duration)
        await self._notify(callbacks.on_model_complete, name, stats)

    async def _notify(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Callback {getattr(callback, '__name__', callback)!r} raised for '{args[0]}': {e}")

    def _log_model_start(self, model: Model) -> None:
        config = model.materialize
        parts = [f"Starting model '{model.name}'", f"materialize={config.type}"]
        if config.mode_name:
            parts.append(f"mode={config.mode_name}")
        if config.db:
            parts.append(f"db={config.db}")
        logger.info(" | ".join(parts))

    def _log_model_end(self, model: Model, success: bool, duration: float, error: str | None = None) -> None:
        duration_str = format_duration(duration)
        if success:
            parts = [f"Completed '{model.name}' in {duration_str}"]
            if model.materialize.type == "collection":
                parts.append(f"-> {model.output_collection_name()}")
            logger.info(" | ".join(parts))
        else:
            error_msg = f"Failed '{model.name}' after {duration_str}"
            if error:
                error_msg += f": {error}"
            logger.error(error_msg)

    def shutdown(self) -> None:
        """Release the worker threads."""
        self.executor_pool.shutdown(wait=False)
