"""
Model definition and materialization configuration.

A model is a named, materializable pipeline. Its ``source`` is a raw
collection or another model (a DAG edge); its pipeline may embed further
models inside ``$lookup``/``$unionWith`` style stages (more DAG edges).
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, NamedTuple, Union

from manifold.core.references import iter_sources, resolve_stages
from manifold.core.source import Collection, Source, coerce_source
from manifold.exceptions import ConfigurationError, CycleError, EphemeralReferenceError

# Valid materialisation types.
MATERIALIZE_TYPES = ("ephemeral", "view", "collection")

# Named collection write modes; MergeOptions covers the custom-merge mode.
COLLECTION_MODES = ("replace", "append", "upsert")

_WHEN_MATCHED = ("replace", "merge", "keepExisting", "fail")
_WHEN_NOT_MATCHED = ("insert", "discard", "fail")
_GRANULARITIES = ("seconds", "minutes", "hours")

Stage = dict[str, Any]
PipelineBuilder = Union[Sequence[Stage], Callable[[], Sequence[Stage]], None]


@dataclass(frozen=True)
class MergeOptions:
    """Custom ``$merge`` behaviour for the collection materialization."""

    on: str | tuple[str, ...]
    when_matched: str = "replace"
    when_not_matched: str = "insert"

    def __post_init__(self) -> None:
        on = self.on
        if isinstance(on, (list, tuple)):
            on = tuple(on)
            if len(on) == 1:
                on = on[0]
        if not on or (isinstance(on, tuple) and not all(isinstance(k, str) and k for k in on)):
            raise ConfigurationError(
                f"Merge 'on' must be a field name or a non-empty list of field names, got {self.on!r}"
            )
        if not isinstance(on, (str, tuple)):
            raise ConfigurationError(f"Merge 'on' must be a field name or list of field names, got {self.on!r}")
        object.__setattr__(self, "on", on)

        if self.when_matched not in _WHEN_MATCHED:
            raise ConfigurationError(
                f"Invalid whenMatched '{self.when_matched}'. Must be one of: {', '.join(_WHEN_MATCHED)}"
            )
        if self.when_not_matched not in _WHEN_NOT_MATCHED:
            raise ConfigurationError(
                f"Invalid whenNotMatched '{self.when_not_matched}'. Must be one of: {', '.join(_WHEN_NOT_MATCHED)}"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MergeOptions":
        """Build from ``{"on": ..., "whenMatched": ..., "whenNotMatched": ...}``, optionally under ``$merge``."""
        if "$merge" in data:
            data = data["$merge"]
        if "on" not in data:
            raise ConfigurationError("Merge mode requires an 'on' key")
        when_matched = data.get("whenMatched", data.get("when_matched")) or "replace"
        when_not_matched = data.get("whenNotMatched", data.get("when_not_matched")) or "insert"
        return cls(on=data["on"], when_matched=when_matched, when_not_matched=when_not_matched)


@dataclass(frozen=True)
class TimeSeriesOptions:
    """Options for provisioning a time-series destination collection."""

    time_field: str
    meta_field: str | None = None
    granularity: str | None = None
    expire_after_seconds: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.time_field, str) or not self.time_field:
            raise ConfigurationError("Time-series options require a 'time_field'")
        if self.granularity is not None and self.granularity not in _GRANULARITIES:
            raise ConfigurationError(
                f"Invalid time-series granularity '{self.granularity}'. Must be one of: {', '.join(_GRANULARITIES)}"
            )
        if self.expire_after_seconds is not None and self.expire_after_seconds < 0:
            raise ConfigurationError("expire_after_seconds must not be negative")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimeSeriesOptions":
        """Accepts snake_case or the driver's camelCase keys."""
        return cls(
            time_field=data.get("time_field", data.get("timeField")),
            meta_field=data.get("meta_field", data.get("metaField")),
            granularity=data.get("granularity"),
            expire_after_seconds=data.get("expire_after_seconds", data.get("expireAfterSeconds")),
        )

    def to_create_options(self) -> dict[str, Any]:
        """Keyword arguments for the store's ``create`` command."""
        timeseries: dict[str, Any] = {"timeField": self.time_field}
        if self.meta_field is not None:
            timeseries["metaField"] = self.meta_field
        if self.granularity is not None:
            timeseries["granularity"] = self.granularity
        options: dict[str, Any] = {"timeseries": timeseries}
        if self.expire_after_seconds is not None:
            options["expireAfterSeconds"] = self.expire_after_seconds
        return options


@dataclass(frozen=True)
class MaterializeConfig:
    """
    How a model's result is persisted.

    Tagged by ``type``:

    - ``ephemeral``: not persisted; inlined into downstream models
    - ``view``: a store view over the upstream collection
    - ``collection``: written with ``mode`` (``replace``, ``append``,
      ``upsert`` or ``MergeOptions``), optionally into a time-series
      collection
    """

    type: str = "ephemeral"
    alias: str | None = None
    db: str | None = None
    mode: str | MergeOptions | None = None
    timeseries: TimeSeriesOptions | None = None

    def __post_init__(self) -> None:
        if self.type not in MATERIALIZE_TYPES:
            raise ConfigurationError(
                f"Invalid materialize type '{self.type}'. Must be one of: {', '.join(MATERIALIZE_TYPES)}"
            )

        mode = self.mode
        if isinstance(mode, Mapping):
            mode = MergeOptions.from_dict(mode)
            object.__setattr__(self, "mode", mode)
        timeseries = self.timeseries
        if isinstance(timeseries, Mapping):
            timeseries = TimeSeriesOptions.from_dict(timeseries)
            object.__setattr__(self, "timeseries", timeseries)

        if self.type == "ephemeral":
            if any(v is not None for v in (self.alias, self.db, mode, timeseries)):
                raise ConfigurationError("Ephemeral materialization takes no alias, db, mode or timeseries options")
        elif self.type == "view":
            if mode is not None or timeseries is not None:
                raise ConfigurationError("View materialization takes no mode or timeseries options")
        elif mode is None:
            raise ConfigurationError("Collection materialization requires a 'mode'")
        elif not isinstance(mode, MergeOptions) and mode not in COLLECTION_MODES:
            raise ConfigurationError(
                f"Invalid collection mode '{mode}'. Must be one of: {', '.join(COLLECTION_MODES)} or merge options"
            )

    @classmethod
    def ephemeral(cls) -> "MaterializeConfig":
        return cls("ephemeral")

    @classmethod
    def view(cls, alias: str | None = None, db: str | None = None) -> "MaterializeConfig":
        return cls("view", alias=alias, db=db)

    @classmethod
    def collection(
        cls,
        mode: str | MergeOptions | Mapping[str, Any] = "replace",
        alias: str | None = None,
        db: str | None = None,
        timeseries: TimeSeriesOptions | Mapping[str, Any] | None = None,
    ) -> "MaterializeConfig":
        return cls("collection", alias=alias, db=db, mode=mode, timeseries=timeseries)  # type: ignore[arg-type]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MaterializeConfig":
        """Build from a config-file style mapping, e.g. ``{"type": "collection", "mode": "upsert"}``."""
        unknown = set(data) - {"type", "alias", "db", "mode", "timeseries"}
        if unknown:
            raise ConfigurationError(f"Unknown materialize option(s): {', '.join(sorted(unknown))}")
        return cls(
            type=data.get("type", "ephemeral"),
            alias=data.get("alias"),
            db=data.get("db"),
            mode=data.get("mode"),
            timeseries=data.get("timeseries"),
        )

    @property
    def mode_name(self) -> str | None:
        """Strategy name for collection materialization: replace/append/upsert/merge."""
        if isinstance(self.mode, MergeOptions):
            return "merge"
        return self.mode


class ResolvedSource(NamedTuple):
    """Where a model actually reads from once ephemeral upstreams are inlined."""

    collection: str
    database: str | None
    prefix_stages: list[Stage]


@dataclass(frozen=True, eq=False, repr=False)
class Model(Source):
    """
    A named, materializable pipeline.

    Models are immutable and compared by identity: two distinct objects
    sharing a name are a configuration error once they meet in a project.

    Example::

        stg_events = Model(
            name="stg_events",
            source=Collection("raw_events"),
            pipeline=[{"$match": {"deleted": {"$ne": True}}}],
            materialize=MaterializeConfig.collection("replace"),
        )

        daily = Model(
            name="daily_metrics",
            source=stg_events,  # DAG edge
            pipeline=[{"$group": {"_id": "$day", "count": {"$sum": 1}}}],
            materialize=MaterializeConfig.collection("upsert"),
        )
    """

    source_type: ClassVar[str] = "model"

    name: str
    source: Source | str
    pipeline: PipelineBuilder = None
    materialize: MaterializeConfig | Mapping[str, Any] = field(default_factory=MaterializeConfig.ephemeral)
    description: str | None = None
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError(f"Model name must be a non-empty string, got {self.name!r}")

        object.__setattr__(self, "source", coerce_source(self.source, self.name))

        materialize = self.materialize
        if materialize is None:
            materialize = MaterializeConfig.ephemeral()
        elif isinstance(materialize, Mapping):
            materialize = MaterializeConfig.from_dict(materialize)
        elif not isinstance(materialize, MaterializeConfig):
            raise ConfigurationError(
                f"Model '{self.name}' materialize must be a MaterializeConfig or mapping, "
                f"got {type(materialize).__name__}"
            )
        object.__setattr__(self, "materialize", materialize)

        pipeline = self.pipeline
        if pipeline is not None and not callable(pipeline):
            if isinstance(pipeline, (str, bytes, Mapping)) or not isinstance(pipeline, Sequence):
                raise ConfigurationError(
                    f"Model '{self.name}' pipeline must be a list of stages or a callable returning one"
                )
            # Snapshot the top-level list so later caller mutation cannot change the model
            object.__setattr__(self, "pipeline", tuple(pipeline))

        object.__setattr__(self, "tags", tuple(self.tags))

    def __repr__(self) -> str:
        return f"Model(name={self.name!r}, materialize={self.materialize.type!r})"

    # -- graph edges ----------------------------------------------------------

    @property
    def is_ephemeral(self) -> bool:
        return self.materialize.type == "ephemeral"

    @property
    def upstream_model(self) -> "Model | None":
        """The model named by ``source``, or None when reading a raw collection."""
        source_type = self.source.source_type  # type: ignore[union-attr]
        if source_type == "model":
            return self.source  # type: ignore[return-value]
        if source_type == "collection":
            return None
        raise ConfigurationError(f"Model '{self.name}' has a source with unknown type '{source_type}'")

    def referenced_sources(self) -> list[Source]:
        """Every source embedded in this model's own stage tree."""
        return list(iter_sources(self.own_stages()))

    def referenced_models(self) -> list["Model"]:
        """Models embedded in this model's own stages (lookups, unions, ...)."""
        return [s for s in self.referenced_sources() if s.source_type == "model"]  # type: ignore[misc]

    def dependencies(self) -> list["Model"]:
        """Direct upstream models: the ``source`` edge first, then embedded references."""
        deps: list[Model] = []
        upstream = self.upstream_model
        if upstream is not None:
            deps.append(upstream)
        for ref in self.referenced_models():
            if not any(ref is d for d in deps):
                deps.append(ref)
        return deps

    # -- output ---------------------------------------------------------------

    def output_collection_name(self) -> str:
        """
        Collection (or view) this model materializes into.

        Raises:
            EphemeralReferenceError: Ephemeral models have no output collection
        """
        if self.is_ephemeral:
            raise EphemeralReferenceError(self.name)
        return self.materialize.alias or self.name

    def output_database(self) -> str | None:
        if self.is_ephemeral:
            return None
        return self.materialize.db

    # -- stages ---------------------------------------------------------------

    def own_stages(self) -> list[Stage]:
        """Evaluate the pipeline builder; the result is never cached."""
        pipeline = self.pipeline
        if callable(pipeline):
            pipeline = pipeline()
        if pipeline is None:
            return []
        if isinstance(pipeline, (str, bytes, Mapping)) or not isinstance(pipeline, Sequence):
            raise ConfigurationError(f"Model '{self.name}' pipeline builder must return a list of stages")
        stages = list(pipeline)
        for i, stage in enumerate(stages):
            if not isinstance(stage, Mapping):
                raise ConfigurationError(
                    f"Model '{self.name}' stage {i} must be a mapping, got {type(stage).__name__}"
                )
        return stages

    def resolve_source(self) -> ResolvedSource:
        """
        Resolve the read source, inlining any chain of ephemeral upstream models.

        Raises:
            CycleError: If the ephemeral chain loops back on itself
        """
        prefix: list[Stage] = []
        seen = {id(self)}
        source: Any = self.source
        while True:
            if source.source_type == "collection":
                return ResolvedSource(source.output_collection_name(), source.output_database(), prefix)
            if source.source_type != "model":
                raise ConfigurationError(f"Unknown source type '{source.source_type}'")
            if not source.is_ephemeral:
                return ResolvedSource(source.output_collection_name(), source.output_database(), prefix)
            if id(source) in seen:
                raise CycleError(f"Ephemeral source chain of model '{self.name}' is circular", cycle=[self.name])
            seen.add(id(source))
            prefix = source.own_stages() + prefix
            source = source.source

    def pipeline_stages(self) -> list[Stage]:
        """Ephemeral upstream stages spliced in front of this model's own stages."""
        return self.resolve_source().prefix_stages + self.own_stages()

    def compiled_stages(self) -> list[Stage]:
        """``pipeline_stages()`` with embedded sources replaced by collection names."""
        return resolve_stages(self.pipeline_stages(), referenced_by=self.name)

    def build_pipeline(self) -> list[Stage]:
        """The complete stage list, including the output stage for collection models."""
        from manifold.materialization import get_materializer

        stages = self.compiled_stages()
        action = get_materializer(self.materialize).output_action(self)
        if action.stage is not None:
            stages.append(action.stage)
        return stages


def model(
    name: str,
    source: Source | str,
    pipeline: PipelineBuilder = None,
    materialize: MaterializeConfig | Mapping[str, Any] | None = None,
    description: str | None = None,
    tags: Sequence[str] = (),
) -> Model:
    """Create a model; ``materialize`` defaults to ephemeral."""
    return Model(
        name=name,
        source=source,
        pipeline=pipeline,
        materialize=materialize if materialize is not None else MaterializeConfig.ephemeral(),
        description=description,
        tags=tuple(tags),
    )


__all__ = [
    "Collection",
    "MaterializeConfig",
    "MergeOptions",
    "Model",
    "ResolvedSource",
    "TimeSeriesOptions",
    "model",
]
