import copy
from typing import Any, Callable, Dict, List, Mapping, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, PrivateAttr, TypeAdapter
from pydantic.fields import FieldInfo
from pydantic_core import PydanticUndefined

from .field_type import (
    FieldTypeCategory,
    RESERVED_KEY_NAMES,
    identify_field_type_category,
    get_inner_type,
    is_optional,
)

"""
pydmongo.keys
=============
Key declarations and default-value application.

A *key* is a named attribute of a document. Keys come from two places:

* **Static keys** – ordinary Pydantic fields declared as class
  annotations. Pydantic applies their defaults and coerces input.
* **Dynamic keys** – declared after the class exists via
  ``Model.key(name, type, default=...)``. Their values are stored in the
  model's extra storage and handled by :func:`apply_key_defaults`, which
  the model validator calls for every construction.

Both kinds are described by :class:`KeyDescriptor`; ``Model.keys()``
exposes the union over the class and its ancestors.
"""

MISSING: Any = object()


class KeyDescriptor(BaseModel):
    """
    Immutable description of one key.

    ``default`` is copied for every instance; ``default_factory`` is
    called for every instance. At most one of them is set.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    annotation: Any
    category: FieldTypeCategory
    default: Any = None
    default_factory: Optional[Callable[[], Any]] = None
    required: bool = False

    _adapter: Optional[TypeAdapter] = PrivateAttr(default=None)

    @classmethod
    def from_field(cls, name: str, field_info: FieldInfo) -> "KeyDescriptor":
        """Describe a static Pydantic field."""
        default = field_info.default
        return cls(
            name=name,
            annotation=field_info.annotation,
            category=identify_field_type_category(field_info.annotation, name),
            default=None if default is PydanticUndefined else default,
            default_factory=field_info.default_factory,
            required=field_info.is_required(),
        )

    def make_default(self) -> Any:
        """Return a fresh default value, never shared with another instance."""
        if self.default_factory is not None:
            return self.default_factory()
        return copy.deepcopy(self.default)

    def coerce(self, value: Any) -> Any:
        """
        Coerce a raw input value according to the key's category.

        Opaque and reserved keys, and ``None``, are returned unchanged.
        """
        if value is None:
            return None
        category = self.category
        if category in (FieldTypeCategory.OPAQUE, FieldTypeCategory.RESERVED):
            return value
        if category == FieldTypeCategory.OBJECT_ID:
            return value if isinstance(value, ObjectId) else ObjectId(value)
        if category == FieldTypeCategory.EMBEDDED_DOC:
            return _coerce_embedded(get_embedded_type(self.annotation), value)
        if category == FieldTypeCategory.LIST_EMBEDDED_DOC:
            embedded_type = get_inner_type(self.annotation)
            return [_coerce_embedded(embedded_type, item) for item in value]
        if self._adapter is None:
            self._adapter = TypeAdapter(self.annotation)
        return self._adapter.validate_python(value)


def get_embedded_type(annotation: Any) -> Any:
    return get_inner_type(annotation) if is_optional(annotation) else annotation


def _coerce_embedded(embedded_type: Any, value: Any) -> Any:
    if isinstance(value, embedded_type):
        if value._root_document is None:
            return value
        # Already embedded in another document: store a copy of its data.
        return type(value).model_validate(value.model_dump(by_alias=True))
    return embedded_type.model_validate(value)


def declare_key(
    name: str,
    annotation: Any,
    default: Any = MISSING,
    *,
    default_factory: Optional[Callable[[], Any]] = None,
    required: bool = False,
) -> KeyDescriptor:
    """
    Build a :class:`KeyDescriptor` for a dynamically declared key.

    ``default`` may be a literal value or a zero-argument producer. A
    callable that is not a class is treated as a producer, so
    ``default=list`` is a literal (the ``list`` type) while
    ``default=lambda: []`` yields a new list per instance; pass
    ``default_factory`` to be explicit.

    Raises
    ------
    ValueError
        If ``name`` is reserved or both defaults are given.
    TypeError
        If ``annotation`` is not a supported key type.
    """
    if name in RESERVED_KEY_NAMES:
        raise ValueError(f"Key name '{name}' is reserved")
    if default is not MISSING and default_factory is not None:
        raise ValueError(f"Key '{name}' cannot have both default and default_factory")

    category = identify_field_type_category(annotation, name)
    if default is MISSING:
        default = None
    elif callable(default) and not isinstance(default, type):
        default_factory, default = default, None

    return KeyDescriptor(
        name=name,
        annotation=annotation,
        category=category,
        default=default,
        default_factory=default_factory,
        required=required,
    )


def apply_key_defaults(
    keys: Mapping[str, KeyDescriptor], data: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Populate ``data`` for every key in ``keys``.

    Keys present in ``data`` are coerced by declared type; absent keys
    receive a fresh default. ``data`` is modified in place and returned.
    """
    for name, key in keys.items():
        if name in data:
            data[name] = key.coerce(data[name])
        else:
            data[name] = key.make_default()
    return data


def missing_required_keys(
    keys: Mapping[str, KeyDescriptor], values: Mapping[str, Any]
) -> List[str]:
    """Return the names of required keys whose value is ``None``."""
    return [
        name for name, key in keys.items() if key.required and values.get(name) is None
    ]
