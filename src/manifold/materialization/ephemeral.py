"""
Ephemeral materialisation - nothing persisted, stages inlined downstream.
"""

from typing import TYPE_CHECKING

from manifold.materialization.base import Materializer, OutputAction
from manifold.utils.logging import get_logger

if TYPE_CHECKING:
    from manifold.connections.base import Store
    from manifold.core.model import Model


class EphemeralMaterializer(Materializer):
    """Ephemeral materializer - never independently executed."""

    type = "ephemeral"

    def __init__(self) -> None:
        self.logger = get_logger("manifold.materialization.ephemeral")

    def output_action(self, model: "Model", database: str | None = None) -> OutputAction:
        return OutputAction(kind="none")

    def materialise(self, store: "Store", model: "Model", database: str | None = None) -> None:
        self.logger.debug(f"Model '{model.name}' is ephemeral, nothing to materialise")
