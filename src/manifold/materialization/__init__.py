"""
Materialization - how model output is persisted.

Maps a model's ``MaterializeConfig`` to a concrete output action and
performs it against the store.
"""

from typing import TYPE_CHECKING

from manifold.materialization.base import Materializer, OutputAction
from manifold.materialization.collection import CollectionMaterializer
from manifold.materialization.ephemeral import EphemeralMaterializer
from manifold.materialization.view import ViewMaterializer

if TYPE_CHECKING:
    from manifold.core.model import MaterializeConfig

__all__ = [
    "Materializer",
    "OutputAction",
    "CollectionMaterializer",
    "ViewMaterializer",
    "EphemeralMaterializer",
    "get_materializer",
]

# Materializer registry
MATERIALIZERS = {
    "ephemeral": EphemeralMaterializer,
    "view": ViewMaterializer,
    "collection": CollectionMaterializer,
}


def get_materializer(config: "MaterializeConfig | str") -> Materializer:
    """Get materializer by config or type name."""
    materialize_type = config if isinstance(config, str) else config.type
    if materialize_type not in MATERIALIZERS:
        raise ValueError(f"Unknown materialization type: {materialize_type}")
    return MATERIALIZERS[materialize_type]()
