"""
View materialisation - (re)create a store view over the upstream collection.
"""

from typing import TYPE_CHECKING

from manifold.exceptions import MaterializationError
from manifold.materialization.base import Materializer, OutputAction
from manifold.utils.logging import get_logger

if TYPE_CHECKING:
    from manifold.connections.base import Store
    from manifold.core.model import Model


class ViewMaterializer(Materializer):
    """View materializer - the model's stages become the view definition."""

    type = "view"

    def __init__(self) -> None:
        self.logger = get_logger("manifold.materialization.view")

    def output_action(self, model: "Model", database: str | None = None) -> OutputAction:
        return OutputAction(
            kind="view",
            target=model.output_collection_name(),
            database=model.output_database() or database,
        )

    def materialise(self, store: "Store", model: "Model", database: str | None = None) -> None:
        """
        Drop any existing view of the same name, then create it again.

        The view reads from the resolved upstream collection; ephemeral
        upstream stages are part of the view definition. A view can only be
        defined over a collection in its own database.

        Raises:
            MaterializationError: If the view and its source are in different
                databases, or the store rejects the view
        """
        run_db = database or store.database_name()
        source = model.resolve_source()
        source_db = source.database or run_db
        action = self.output_action(model, run_db)
        if action.database != source_db:
            raise MaterializationError(
                f"View model '{model.name}' would be created in database '{action.database}' "
                f"but its source '{source.collection}' is in '{source_db}'",
                details={"model": model.name, "view_database": action.database, "source_database": source_db},
            )
        stages = model.compiled_stages()

        self.logger.debug(f"Recreating view '{action.target}' on '{source.collection}' ({len(stages)} stages)")
        store.drop_view(action.database, action.target)  # type: ignore[arg-type]
        try:
            store.create_view(action.database, action.target, source.collection, stages)  # type: ignore[arg-type]
        except Exception as e:
            raise MaterializationError(
                f"Failed to create view '{action.target}' for model '{model.name}': {e}",
                details={"model": model.name, "view": action.target},
            ) from e
