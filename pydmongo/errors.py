"""Exceptions raised by the mapper layer itself.

Driver failures (``pymongo.errors``) are never translated; they reach
the caller unchanged.
"""


class MapperError(Exception):
    """Base class for mapper-level errors."""


class DocumentNotValid(MapperError):
    """Raised by ``save()`` when a required key has no value."""

    def __init__(self, model_type: type, missing: list[str]):
        self.model_type = model_type
        self.missing = missing
        super().__init__(
            f"{model_type.__name__} is missing required key(s): {', '.join(missing)}"
        )


class DocumentNotFound(MapperError):
    """Raised when a document looked up by id does not exist."""
