import datetime
import enum
import inspect
import strenum
from bson import ObjectId
from pydantic import BaseModel
from typing import Any, Dict, List, Type, TypeAlias, Union, get_origin, get_args

"""
pydmongo.field_type
===================
Utility helpers that map a *Python type annotation* (on a model field
or a dynamically declared key) to a restricted enumeration
:class:`FieldTypeCategory`. The category decides how a raw value is
coerced when a dynamic key is populated, and which annotations are
accepted when a document class is declared.

Supported annotation shapes
---------------------------

* Scalars (``str``, ``int``, ``float``, ``bytes``, ``bool``),
  ``datetime``, ``bson.ObjectId`` and ``StrEnum`` / ``IntEnum``
  subclasses, either bare or wrapped in ``typing.Optional[T]``.

* Embedded documents, bare or ``Optional``, and ``List[Embedded]``.

* JSON-like containers in the non-optional forms ``List[x]`` and
  ``Dict[str, x]``. Optional containers such as ``Optional[List[x]]``
  are rejected; use an empty container as the default instead.

* Any other class (or ``typing.Any``) is an *opaque* type: values are
  stored as given and never coerced.

Top-level documents cannot be used as a field type. They live in their
own collection and are referenced through ``belongs_to`` / ``many``.
"""

Annotation: TypeAlias = Any
InnerType: TypeAlias = Any

PYTHON_LITERAL_CLASSES = (
    str,
    float,
    int,
    bytes,
    bool,
)

RESERVED_KEY_NAMES = frozenset({"id", "_id", "_type"})


def _capability(value: Any) -> str | None:
    if inspect.isclass(value) and issubclass(value, BaseModel):
        return getattr(value, "__mapper_capability__", None)
    return None


def is_embedded_document_class(value: Any) -> bool:
    return _capability(value) == "embedded_document"


def is_document_class(value: Any) -> bool:
    return _capability(value) == "document"


def is_optional(annotation: Annotation) -> bool:
    """
    Return ``True`` if the annotation is a union containing ``NoneType``.

    ``Optional[T]`` and the PEP 604 ``T | None`` are treated the same.
    """
    args = get_args(annotation)
    return any(arg is type(None) for arg in args)


def get_inner_type(annotation: Annotation) -> InnerType:
    """
    Extract a useful "inner" type from an annotation.

    Supported patterns
    ------------------
    * Optional[T] / Union[T, None]:
        return T, but require exactly one non-None member.
    * Simple generics with a single argument (e.g. List[T]):
        return that single argument.

    Multi-argument generics (``Dict[str, int]``) are returned unchanged.
    """
    args = get_args(annotation)

    if not args:
        raise AssertionError(f"Cannot extract inner type from {annotation}")

    if any(arg is type(None) for arg in args):
        non_none_types = [arg for arg in args if arg is not type(None)]
        if len(non_none_types) == 1:
            return non_none_types[0]
        raise TypeError(f"Unexpected union in {annotation}")

    if len(args) == 1:
        return args[0]

    return annotation


class FieldTypeCategory(enum.StrEnum):
    """
    Allowed key types in pydmongo. Enum docstrings are formatted as:
        <annotation>. <coercion applied to raw input>
    """

    PY_LITERAL = "PY_LITERAL"
    """
    [Optional] x, x = str, int, float, bytes, bool. Lax Pydantic coercion
    (e.g. ``"27"`` → ``27``).
    """

    DATETIME = "DATETIME"
    """
    [Optional] datetime. ISO-8601 strings are parsed.
    """

    OBJECT_ID = "OBJECT_ID"
    """
    [Optional] bson.ObjectId. Hex strings are converted.
    """

    STR_ENUM = "STR_ENUM"
    """
    [Optional] StrEnum (stdlib or ``strenum``). Values are looked up by value.
    """

    INT_ENUM = "INT_ENUM"
    """
    [Optional] IntEnum. Values are looked up by value.
    """

    EMBEDDED_DOC = "EMBEDDED_DOC"
    """
    [Optional] embedded document class. Mappings are validated into an
    instance of the class; instances are kept.
    """

    LIST_EMBEDDED_DOC = "LIST_EMBEDDED_DOC"
    """
    List[embedded document class]. Each mapping item becomes an instance.
    """

    PY_JSON = "PY_JSON"
    """
    List[x] or Dict[str, x], x JSON-like. Items are coerced to ``x``.
    """

    OPAQUE = "OPAQUE"
    """
    Any other class, or ``typing.Any``. Stored as-is, never coerced.
    """

    RESERVED = "RESERVED"
    """
    Reserved keys: the identity (``id`` / ``_id``) and the polymorphic
    discriminator ``_type``.
    """


def _identify_scalar(inner_type: InnerType) -> FieldTypeCategory | None:
    if inner_type in PYTHON_LITERAL_CLASSES:
        return FieldTypeCategory.PY_LITERAL
    if inner_type is datetime.datetime:
        return FieldTypeCategory.DATETIME
    if inner_type is ObjectId:
        return FieldTypeCategory.OBJECT_ID
    if isinstance(inner_type, type) and issubclass(inner_type, enum.Enum):
        if issubclass(inner_type, enum.StrEnum) or issubclass(
            inner_type, strenum.StrEnum
        ):
            return FieldTypeCategory.STR_ENUM
        elif issubclass(inner_type, enum.IntEnum):
            return FieldTypeCategory.INT_ENUM
        raise TypeError(
            f"Enum type {inner_type} is not supported (only StrEnum and IntEnum)."
        )
    if is_embedded_document_class(inner_type):
        return FieldTypeCategory.EMBEDDED_DOC
    if is_document_class(inner_type):
        raise TypeError(
            f"Document class {inner_type.__name__} cannot be used as a key type; "
            "declare a belongs_to / many association instead."
        )
    return None


def identify_field_type_category(
    annotation: Annotation, field_name: str | None = None
) -> FieldTypeCategory:
    """
    Map a key annotation to a :class:`FieldTypeCategory`.

    Parameters
    ----------
    annotation:
        The declared type, e.g. ``FieldInfo.annotation`` or the type
        passed to ``Model.key``.
    field_name:
        Optional key name, used to detect reserved names and in error
        messages.

    Raises
    ------
    TypeError
        If the annotation does not fall into one of the supported
        categories described in the module docstring.
    """
    if field_name and field_name in RESERVED_KEY_NAMES:
        return FieldTypeCategory.RESERVED

    if annotation is Any:
        return FieldTypeCategory.OPAQUE

    origin = get_origin(annotation)

    if is_optional(annotation):
        inner_type = get_inner_type(annotation)
        if get_origin(inner_type) in (list, List, dict, Dict):
            raise TypeError(
                f"Optional container for '{field_name}' is not allowed: {annotation}!"
            )
        category = _identify_scalar(inner_type)
        if category is not None:
            return category
        if inspect.isclass(inner_type) or inner_type is Any:
            return FieldTypeCategory.OPAQUE
        raise TypeError(f"An optional type that is not allowed: {annotation}!")
    elif origin is Union:
        raise TypeError(f"Union type for '{field_name}' is not allowed: {annotation}!")
    elif origin in (list, List):
        inner_type = get_inner_type(annotation)
        if is_embedded_document_class(inner_type):
            return FieldTypeCategory.LIST_EMBEDDED_DOC
        if is_document_class(inner_type):
            raise TypeError(
                f"List of documents for '{field_name}' is not allowed; "
                "declare a many association instead."
            )
        return FieldTypeCategory.PY_JSON
    elif origin in (dict, Dict):
        key_type, _ = get_args(annotation)
        if key_type is not str:
            raise TypeError(f"Dict key must be a str for '{field_name}'")
        return FieldTypeCategory.PY_JSON
    elif annotation in (list, dict):
        return FieldTypeCategory.PY_JSON

    category = _identify_scalar(annotation)
    if category is not None:
        return category
    if inspect.isclass(annotation):
        return FieldTypeCategory.OPAQUE
    raise TypeError(f"A key type that is not allowed: {annotation}!")


def validate_model_class(model_class: Type[BaseModel]) -> None:
    """
    Validate that *every* field in ``model_class`` is allowed.

    Called once per class at declaration time, so an unsupported
    annotation surfaces at import rather than on first use. A class
    whose forward references are still unresolved is skipped here and
    checked again once ``model_rebuild()`` completes it (see
    :meth:`pydmongo.base_class.MapperModel.model_rebuild`).

    Raises
    ------
    TypeError
        If any field annotation violates :class:`FieldTypeCategory`.
    """
    if not model_class.__pydantic_complete__:
        return
    for field_name, field_info in model_class.model_fields.items():
        identify_field_type_category(field_info.annotation, field_name)
