"""
Stage-tree visitor for embedded source references.

Pipelines are opaque stage documents. The only thing the orchestrator reads
from them is where a ``Collection`` or ``Model`` object was placed, e.g. the
``from`` of a ``$lookup`` or the ``coll`` of a ``$unionWith``, at any
nesting depth (sub-pipelines included).
"""

from collections.abc import Iterator, Mapping
from typing import Any

from manifold.core.source import Source
from manifold.exceptions import ConfigurationError, EphemeralReferenceError


def iter_sources(stages: Any) -> Iterator[Source]:
    """
    Yield every source object embedded in a stage tree, in document order.

    Mappings and lists/tuples are descended into; sources are leaves and
    are never descended into. Any other value is ignored.

    Raises:
        ConfigurationError: If the stage tree contains itself
    """
    active: set[int] = set()

    def visit(node: Any) -> Iterator[Source]:
        if isinstance(node, Source):
            yield node
            return
        if isinstance(node, Mapping):
            children = node.values()
        elif isinstance(node, (list, tuple)):
            children = node
        else:
            return

        if id(node) in active:
            raise ConfigurationError("Pipeline stage tree contains a reference to itself")
        active.add(id(node))
        for child in children:
            yield from visit(child)
        active.discard(id(node))

    yield from visit(stages)


def resolve_stages(stages: Any, referenced_by: str | None = None) -> Any:
    """
    Return a copy of a stage tree with every source replaced by its output
    collection name.

    Args:
        stages: Stage list (or any sub-tree of one)
        referenced_by: Name of the model owning the stages, for error messages

    Raises:
        EphemeralReferenceError: If an ephemeral model is referenced by name
    """
    if isinstance(stages, Source):
        if stages.source_type == "collection":
            return stages.output_collection_name()
        if stages.source_type == "model":
            if stages.is_ephemeral:  # type: ignore[attr-defined]
                raise EphemeralReferenceError(stages.name, referenced_by)  # type: ignore[attr-defined]
            return stages.output_collection_name()
        raise ConfigurationError(f"Unknown source type '{stages.source_type}'")
    if isinstance(stages, Mapping):
        return {key: resolve_stages(value, referenced_by) for key, value in stages.items()}
    if isinstance(stages, (list, tuple)):
        return [resolve_stages(item, referenced_by) for item in stages]
    return stages
