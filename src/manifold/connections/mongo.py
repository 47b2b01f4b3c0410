"""
MongoDB store backed by pymongo.
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import CollectionInvalid
from pymongo.errors import ConfigurationError as PyMongoConfigurationError

from manifold.connections.base import Store
from manifold.exceptions import ConfigurationError
from manifold.utils.logging import get_logger

if TYPE_CHECKING:
    from manifold.config.loader import Config
    from manifold.core.model import TimeSeriesOptions

logger = get_logger("manifold.connections.mongo")


class MongoStore(Store):
    """
    Store implementation over a pymongo ``MongoClient``.

    ``MongoClient`` is thread-safe and pools connections internally, so one
    instance is shared across all concurrently executing models.

    Attributes:
        client: The pymongo client
        default_database: Database used when a call passes ``database=None``
    """

    def __init__(self, client: MongoClient, default_database: str | None = None, *, owns_client: bool = False):
        self.client = client
        self.default_database = default_database
        self._owns_client = owns_client

    @classmethod
    def connect(cls, uri: str, default_database: str | None = None, **client_kwargs: Any) -> "MongoStore":
        """Create a store with its own client; ``close()`` closes that client."""
        return cls(MongoClient(uri, **client_kwargs), default_database, owns_client=True)

    @classmethod
    def from_config(cls, config: "Config | dict[str, Any]") -> "MongoStore":
        """
        Create a store from the ``connection`` section of a configuration.

        Example::

            connection:
              uri: ${MONGODB_URI}
              database: analytics

        Raises:
            ConfigurationError: If ``connection.uri`` is missing
        """
        data = getattr(config, "data", config) or {}
        connection = data.get("connection") or {}
        uri = connection.get("uri")
        if not uri:
            raise ConfigurationError("Configuration 'connection.uri' is required to connect to MongoDB")
        client_kwargs = dict(connection.get("options") or {})
        return cls.connect(uri, connection.get("database"), **client_kwargs)

    def _db(self, database: str | None) -> Database:
        name = database or self.default_database
        if name:
            return self.client[name]
        try:
            return self.client.get_default_database()
        except PyMongoConfigurationError as e:
            raise ConfigurationError(
                "No database given: pass one to run(), set a project default, or include it in the connection URI"
            ) from e

    def database_name(self, database: str | None = None) -> str | None:
        """Resolved database name, falling back to the one in the connection URI."""
        return self._db(database).name

    def aggregate(self, database: str | None, collection: str, stages: Sequence[dict[str, Any]]) -> None:
        db = self._db(database)
        logger.debug(f"Aggregating {db.name}.{collection} ({len(stages)} stages)")
        with db[collection].aggregate(list(stages)) as cursor:
            for _ in cursor:
                pass

    def drop_view(self, database: str | None, name: str) -> None:
        # drop_collection is a no-op for a missing namespace
        self._db(database).drop_collection(name)

    def create_view(
        self, database: str | None, name: str, view_on: str, stages: Sequence[dict[str, Any]]
    ) -> None:
        self._db(database).create_collection(name, viewOn=view_on, pipeline=list(stages))

    def collection_exists(self, database: str | None, name: str) -> bool:
        return name in self._db(database).list_collection_names(filter={"name": name})

    def create_timeseries_collection(self, database: str | None, name: str, options: "TimeSeriesOptions") -> None:
        db = self._db(database)
        try:
            db.create_collection(name, **options.to_create_options())
        except CollectionInvalid:
            # Created by a concurrent run
            logger.debug(f"Time-series collection {db.name}.{name} already exists")

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
