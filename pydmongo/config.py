import threading
from typing import Any, Optional

from bson import ObjectId
from loguru import logger as _loguru_logger
from pydantic import BaseModel, ConfigDict
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from . import settings
from .naming import tableize

"""
pydmongo.config
===============
Process-wide defaults (connection, database name, logger) and the
per-class :class:`ClassConfig` that may override them.

Per-class settings never mutate the process defaults: a class with an
override resolves to its own value, every other class keeps resolving
to the default. Overrides are looked up along the class lineage (the
class itself, then its registered ancestors), so subclasses sharing a
collection also share its database and connection unless they override
them explicitly.

The driver (``pymongo``) is only touched through the small wrappers at
the bottom of this module.
"""


class ClassConfig(BaseModel):
    """
    Immutable per-class overrides. ``None`` means "not set here".

    A class's config is replaced, never mutated: see
    :meth:`pydmongo.registry.DocumentRegistry.configure`.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    collection_name: Optional[str] = None
    database_name: Optional[str] = None
    connection: Optional[Any] = None


# ──────────────────────────────────────────────────────────────────────
# Process defaults
# ──────────────────────────────────────────────────────────────────────

_lock = threading.RLock()
_connection: Optional[MongoClient] = None
_database_name: Optional[str] = settings.DEFAULT_DATABASE_NAME
_logger: Any = _loguru_logger


def connect(uri: Optional[str] = None, **client_kwargs: Any) -> MongoClient:
    """Create a ``MongoClient`` and install it as the default connection."""
    client: MongoClient = MongoClient(uri or settings.DEFAULT_MONGO_URI, **client_kwargs)
    set_connection(client)
    return client


def set_connection(conn: Optional[MongoClient]) -> None:
    global _connection
    with _lock:
        _connection = conn
    _logger.debug("Default connection set to {}", conn)


def connection() -> MongoClient:
    """
    Return the default connection, creating one from
    ``PYDMONGO_MONGO_URI`` on first use.
    """
    global _connection
    with _lock:
        if _connection is None:
            _connection = MongoClient(settings.DEFAULT_MONGO_URI)
            _logger.debug("Created default connection to {}", settings.DEFAULT_MONGO_URI)
        return _connection


def set_database_name(name: Optional[str]) -> None:
    global _database_name
    with _lock:
        _database_name = name
    _logger.debug("Default database name set to '{}'", name)


def database_name() -> Optional[str]:
    return _database_name


def database() -> Database:
    return get_database(connection(), database_name())


def set_logger(new_logger: Any) -> None:
    """Replace the process logger returned by :func:`logger`."""
    global _logger
    with _lock:
        _logger = new_logger


def logger() -> Any:
    """The process-wide logger; loguru's ``logger`` unless replaced."""
    return _logger


# ──────────────────────────────────────────────────────────────────────
# Per-class resolution
# ──────────────────────────────────────────────────────────────────────


def _first_override(model_type: type, attr: str) -> Any:
    registry = model_type.__mapper_registry__
    for klass in registry.lineage(model_type):
        value = getattr(registry.config_for(klass), attr)
        if value is not None:
            return value
    return None


def resolve_collection_name(model_type: type) -> str:
    """
    Collection name for ``model_type``.

    The nearest override along the lineage wins; without one, the name
    is derived from the *root* ancestor so that every class in an
    inheritance tree shares a single collection. Computed on each call,
    so overrides set later on a base class are picked up by subclasses.
    """
    override = _first_override(model_type, "collection_name")
    if override is not None:
        return override
    lineage = model_type.__mapper_registry__.lineage(model_type)
    root = lineage[-1] if lineage else model_type
    return tableize(root.__qualname__)


def resolve_database_name(model_type: type) -> Optional[str]:
    override = _first_override(model_type, "database_name")
    return override if override is not None else database_name()


def resolve_connection(model_type: type) -> MongoClient:
    override = _first_override(model_type, "connection")
    return override if override is not None else connection()


# ──────────────────────────────────────────────────────────────────────
# Driver wrappers
# ──────────────────────────────────────────────────────────────────────


def get_database(conn: MongoClient, name: Optional[str]) -> Database:
    """
    ``name=None`` falls back to the database named in the connection
    URI; the driver raises ``ConfigurationError`` if there is none.
    """
    return conn.get_database(name)


def collection(
    conn: MongoClient, db_name: Optional[str], collection_name: str
) -> Collection:
    return get_database(conn, db_name)[collection_name]


def remove_all(coll: Collection) -> int:
    """Delete every document in ``coll``; returns the deleted count."""
    result = coll.delete_many({})
    _logger.debug("Removed {} document(s) from '{}'", result.deleted_count, coll.name)
    return result.deleted_count


def new_object_id() -> ObjectId:
    return ObjectId()
