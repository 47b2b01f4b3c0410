"""
Collection materialisation - run the pipeline into a destination collection.
"""

from typing import TYPE_CHECKING

from manifold.exceptions import MaterializationError
from manifold.materialization.base import Materializer, OutputAction
from manifold.strategies import get_strategy
from manifold.utils.logging import get_logger

if TYPE_CHECKING:
    from manifold.connections.base import Store
    from manifold.core.model import Model


class CollectionMaterializer(Materializer):
    """Collection materializer - appends the write strategy's output stage."""

    type = "collection"

    def __init__(self) -> None:
        self.logger = get_logger("manifold.materialization.collection")

    def output_action(self, model: "Model", database: str | None = None) -> OutputAction:
        """
        Args:
            model: Model to materialise
            database: Destination database when the model sets none; None
                writes into the database the pipeline runs in
        """
        config = model.materialize
        target = model.output_collection_name()
        database = model.output_database() or database
        strategy = get_strategy(config.mode_name)  # type: ignore[arg-type]
        if config.mode_name == "merge":
            stage = strategy.generate_stage(target, database, options=config.mode)
        else:
            stage = strategy.generate_stage(target, database)
        return OutputAction(
            kind="aggregate",
            target=target,
            database=database,
            stage=stage,
            timeseries=config.timeseries,
        )

    def materialise(self, store: "Store", model: "Model", database: str | None = None) -> None:
        """
        Provision a time-series destination if needed, then run the pipeline.

        The pipeline runs in the source's database. Output goes to the
        model's ``materialize.db``, else to the run database, which is where
        downstream models look for it. A source in another database therefore
        gets an output stage naming the run database.
        """
        run_db = database or store.database_name()
        source = model.resolve_source()
        if source.database and run_db is None and model.output_database() is None:
            raise MaterializationError(
                f"Model '{model.name}' reads from database '{source.database}' but no run database is known: "
                "pass database= to run() or set a project default",
                details={"model": model.name, "source_database": source.database},
            )
        source_db = source.database or run_db
        action = self.output_action(model, run_db if source_db != run_db else None)
        if action.timeseries is not None:
            self._ensure_timeseries(store, model, action, run_db)

        stages = model.compiled_stages()
        stages.append(action.stage)  # type: ignore[arg-type]

        self.logger.debug(
            f"Running '{model.name}' on '{source.collection}' into '{action.target}' ({len(stages)} stages)"
        )
        store.aggregate(source_db, source.collection, stages)

    def _ensure_timeseries(self, store: "Store", model: "Model", action: OutputAction, database: str | None) -> None:
        target_db = action.database or database
        if store.collection_exists(target_db, action.target):  # type: ignore[arg-type]
            return
        self.logger.info(f"Creating time-series collection '{action.target}' for model '{model.name}'")
        try:
            store.create_timeseries_collection(target_db, action.target, action.timeseries)  # type: ignore[arg-type]
        except Exception as e:
            raise MaterializationError(
                f"Failed to create time-series collection '{action.target}' for model '{model.name}': {e}",
                details={"model": model.name, "collection": action.target},
            ) from e
