import os
from typing import Final, Optional

"""
pydmongo.settings
=================
Process-level defaults read from the environment at import time.

* ``PYDMONGO_MONGO_URI`` – URI used when the default connection is
  created lazily (see :func:`pydmongo.config.connection`).
* ``PYDMONGO_DATABASE_NAME`` – default database name. When unset, the
  database named in the URI is used; if the URI names none either, the
  driver raises on first use.
"""

ENV_MONGO_URI: Final[str] = "PYDMONGO_MONGO_URI"
ENV_DATABASE_NAME: Final[str] = "PYDMONGO_DATABASE_NAME"

DEFAULT_MONGO_URI: Final[str] = os.getenv(ENV_MONGO_URI, "mongodb://localhost:27017")
DEFAULT_DATABASE_NAME: Final[Optional[str]] = os.getenv(ENV_DATABASE_NAME) or None

# Document keys with a fixed meaning in every stored document.
ID_KEY: Final[str] = "_id"
TYPE_KEY: Final[str] = "_type"
