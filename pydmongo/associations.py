import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from .field_type import is_embedded_document_class
from .naming import camel_to_snake, snake_to_camel
from .registry import find_class_by_name

"""
pydmongo.associations
=====================
Declarative relationships between mapper classes.

* ``belongs_to`` – the owner stores the target's id in ``<name>_id``.
* ``many`` – either a list of embedded documents stored inline, or the
  set of target documents whose foreign key points back at the owner.

Associations are recorded per class and inherited: ``associations()``
on a subclass returns its own plus every ancestor's.
"""


class AssociationKind(enum.StrEnum):
    BELONGS_TO = "belongs_to"
    MANY = "many"


class Association(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    kind: AssociationKind
    owner: Any
    target: Any = None
    """Target class, or its bare class name when declared before it exists."""
    foreign_key: str
    polymorphic: bool = False

    @property
    def target_class(self) -> type:
        """
        Resolve the target lazily so associations may point at classes
        declared later.
        """
        if isinstance(self.target, type):
            return self.target
        name = self.target or snake_to_camel(self.name)
        resolved = find_class_by_name(name)
        if resolved is None:
            raise LookupError(
                f"Association '{self.name}' on {self.owner.__name__}: "
                f"no registered class named '{name}'"
            )
        return resolved

    @property
    def embedded(self) -> bool:
        """
        True for a ``many`` association whose target is an embedded
        document class. A target given by name is looked up first; a
        name nothing is registered under yet counts as a document.
        """
        if self.kind != AssociationKind.MANY:
            return False
        target = self.target
        if not isinstance(target, type):
            target = find_class_by_name(target or snake_to_camel(self.name))
        return is_embedded_document_class(target)


def belongs_to_association(
    owner: type, name: str, target: Any = None, foreign_key: Optional[str] = None
) -> Association:
    return Association(
        name=name,
        kind=AssociationKind.BELONGS_TO,
        owner=owner,
        target=target,
        foreign_key=foreign_key or f"{name}_id",
    )


def many_association(
    owner: type,
    name: str,
    target: Any,
    polymorphic: bool = False,
    foreign_key: Optional[str] = None,
) -> Association:
    return Association(
        name=name,
        kind=AssociationKind.MANY,
        owner=owner,
        target=target,
        foreign_key=foreign_key or f"{camel_to_snake(owner.__name__)}_id",
        polymorphic=polymorphic,
    )


def belongs_to_property(association: Association) -> property:
    fk = association.foreign_key

    def getter(self: Any) -> Any:
        target_id = getattr(self, fk, None)
        if target_id is None:
            return None
        return association.target_class.find(target_id)

    def setter(self: Any, value: Any) -> None:
        setattr(self, fk, None if value is None else value.id)

    return property(getter, setter, doc=f"The {association.name} this document belongs to.")


def many_documents_property(association: Association) -> property:
    fk = association.foreign_key

    def getter(self: Any) -> list:
        target_class = association.target_class
        if is_embedded_document_class(target_class):
            raise TypeError(
                f"Association '{association.name}' on {association.owner.__name__} "
                f"names embedded class {target_class.__name__}, which was not "
                "registered when the association was declared"
            )
        if self.id is None:
            return []
        return target_class.find_all({fk: self.id})

    return property(getter, doc=f"Documents whose '{fk}' points at this one.")
