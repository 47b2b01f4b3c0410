"""
Base materialiser interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from manifold.connections.base import Store
    from manifold.core.model import Model, TimeSeriesOptions


@dataclass(frozen=True)
class OutputAction:
    """
    The concrete output a materialization config maps to.

    ``kind`` is one of:

    - ``none``: nothing is executed (ephemeral)
    - ``view``: (re)create a view named ``target``
    - ``aggregate``: run the pipeline with ``stage`` appended; ``timeseries``
      asks for one-time provisioning of the destination first
    """

    kind: str
    target: str | None = None
    database: str | None = None
    stage: dict[str, Any] | None = None
    timeseries: "TimeSeriesOptions | None" = None


class Materializer(ABC):
    """Base class for materialisers."""

    type: str = ""

    @abstractmethod
    def output_action(self, model: "Model", database: str | None = None) -> OutputAction:
        """
        Map the model's materialization config to its output action (pure).

        ``database`` is the destination used when the model names none.
        """

    @abstractmethod
    def materialise(self, store: "Store", model: "Model", database: str | None = None) -> None:
        """
        Materialise a model against the store.

        Args:
            store: Backing store
            model: Model to materialise
            database: Run-level default database (None for the store default)
        """
