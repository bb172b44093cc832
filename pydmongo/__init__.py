"""
Public API for the pydmongo package.

Most users will interact with:

* :class:`Document` and :class:`EmbeddedDocument` as Pydantic bases
  for MongoDB-backed models.
* The process-wide defaults in :mod:`pydmongo.config` (``connect``,
  ``set_database_name``, ``set_logger``).
* The registries, when introspecting declared classes or appending
  extension / inclusion bundles.
"""

from .field_type import (
    FieldTypeCategory,
    identify_field_type_category,
    validate_model_class,
    get_inner_type,
)
from .keys import KeyDescriptor, declare_key
from .config import (
    ClassConfig,
    connect,
    connection,
    set_connection,
    database,
    database_name,
    set_database_name,
    logger,
    set_logger,
)
from .registry import (
    DocumentRegistry,
    DOCUMENTS,
    EMBEDDED_DOCUMENTS,
    resolve_class_from_tag,
)
from .associations import Association, AssociationKind
from .base_class import (
    MapperModel,
    Document,
    EmbeddedDocument,
)
from .errors import MapperError, DocumentNotValid, DocumentNotFound
from .version import __version__ as __version__

__all__ = [
    # field_type
    "FieldTypeCategory",
    "identify_field_type_category",
    "validate_model_class",
    "get_inner_type",
    # keys
    "KeyDescriptor",
    "declare_key",
    # config
    "ClassConfig",
    "connect",
    "connection",
    "set_connection",
    "database",
    "database_name",
    "set_database_name",
    "logger",
    "set_logger",
    # registry
    "DocumentRegistry",
    "DOCUMENTS",
    "EMBEDDED_DOCUMENTS",
    "resolve_class_from_tag",
    # associations
    "Association",
    "AssociationKind",
    # base_class
    "MapperModel",
    "Document",
    "EmbeddedDocument",
    # errors
    "MapperError",
    "DocumentNotValid",
    "DocumentNotFound",
    # version
    "__version__",
]
