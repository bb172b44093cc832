import copy
from typing import (
    Any,
    ClassVar,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Type,
    TypeVar,
    cast,
)

from bson import ObjectId
from loguru import logger
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    model_serializer,
    model_validator,
)
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from . import config
from .associations import (
    Association,
    AssociationKind,
    belongs_to_association,
    belongs_to_property,
    many_association,
    many_documents_property,
)
from .config import ClassConfig
from .errors import DocumentNotFound, DocumentNotValid
from .field_type import validate_model_class
from .keys import (
    MISSING,
    KeyDescriptor,
    apply_key_defaults,
    declare_key,
    missing_required_keys,
)
from .registry import (
    DOCUMENTS,
    EMBEDDED_DOCUMENTS,
    DocumentRegistry,
    resolve_class_from_tag,
    type_tag,
)
from .settings import ID_KEY, TYPE_KEY

"""
pydmongo.base_class
===================
Pydantic bases for MongoDB-backed models.

* :class:`MapperModel` – shared machinery: registration, keys,
  associations, polymorphic ``_type`` tags, identity and equality,
  cloning.
* :class:`Document` – a top-level document with its own collection,
  connection/database resolution and persistence helpers.
* :class:`EmbeddedDocument` – a document stored inside another one.
  Every embedded instance built while constructing a document points
  back at that top-level document through ``_root_document``.

Declaring a subclass is enough to register it::

    class Message(Document):
        body: Optional[str] = None

    class Enter(Message):
        pass

    Message.belongs_to("room")
    Enter.collection_name()   # "messages"
    Message.subclasses()      # [Enter]
"""


M = TypeVar("M", bound="MapperModel")
D = TypeVar("D", bound="Document")


def _iter_embedded(value: Any) -> Iterator["EmbeddedDocument"]:
    if isinstance(value, EmbeddedDocument):
        yield value
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, EmbeddedDocument):
                yield item
    elif isinstance(value, dict):
        for item in value.values():
            if isinstance(item, EmbeddedDocument):
                yield item


# ──────────────────────────────────────────────────────────────────────
# MapperModel – shared base
# ──────────────────────────────────────────────────────────────────────


class MapperModel(BaseModel):
    """
    Base class for every pydmongo model.

    Responsibilities
    ----------------
    * **Registration** – ``__pydantic_init_subclass__`` validates field
      annotations against :mod:`pydmongo.field_type` and registers the
      class in its capability's registry. Classes that set
      ``__abstract__ = True`` in their own body are skipped.

    * **Keys** – annotations are static keys; :meth:`key` declares
      dynamic ones whose values live in the model's extra storage.

    * **Polymorphic serialisation** – every dump carries a ``_type``
      tag ``"<module>:<qualname>"``; validating data with a tag naming a
      registered subclass yields an instance of that subclass.

    * **Identity** – ``id`` (stored as ``_id``). Two instances are
      equal iff they have the same class and equal, non-null ids.
    """

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    __abstract__ = True
    __mapper_capability__: ClassVar[str] = ""
    __mapper_registry__: ClassVar[DocumentRegistry]

    # Optional per-class overrides, read once at registration time.
    __collection_name__: ClassVar[Optional[str]] = None
    __database_name__: ClassVar[Optional[str]] = None
    __connection__: ClassVar[Optional[Any]] = None

    id: Any = Field(default=None, alias=ID_KEY)

    _root_document: Any = PrivateAttr(default=None)
    _persisted: bool = PrivateAttr(default=False)

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        validate_model_class(cls)
        cls.__mapper_keys__: Dict[str, KeyDescriptor] = {}
        cls.__mapper_associations__: Dict[str, Association] = {}
        if cls.__dict__.get("__abstract__", False):
            return
        cls.__mapper_registry__.register(
            cls,
            ClassConfig(
                collection_name=cls.__dict__.get("__collection_name__"),
                database_name=cls.__dict__.get("__database_name__"),
                connection=cls.__dict__.get("__connection__"),
            ),
        )

    @classmethod
    def model_rebuild(
        cls,
        *,
        force: bool = False,
        raise_errors: bool = True,
        _parent_namespace_depth: int = 2,
        _types_namespace: Any = None,
    ) -> bool | None:
        """
        Rebuild as Pydantic does, then run the field-type check that was
        skipped while forward references were unresolved.
        """
        rebuilt = super().model_rebuild(
            force=force,
            raise_errors=raise_errors,
            # One extra frame: this override sits between caller and Pydantic.
            _parent_namespace_depth=_parent_namespace_depth + 1,
            _types_namespace=_types_namespace,
        )
        validate_model_class(cls)
        return rebuilt

    # ── polymorphic tags ──────────────────────────────────────────────

    @model_serializer(mode="wrap")
    def inject_type_on_serialization(
        self, nxt: SerializerFunctionWrapHandler, info: SerializationInfo | None = None
    ) -> dict[str, Any]:
        data = nxt(self)
        data[TYPE_KEY] = type_tag(type(self))
        return data

    @model_validator(mode="wrap")
    @classmethod
    def retrieve_type_on_deserialization(cls, value: Any, handler: Any) -> Any:
        """
        Use ``_type`` to select a registered subclass if present, then
        give every dynamic key its coerced value or fresh default.

        A tag that cannot be resolved, or names a class outside this
        one's hierarchy, is dropped and ``cls`` is used.
        """
        if isinstance(value, Mapping):
            value = dict(value)
            tag = value.pop(TYPE_KEY, None)
            if tag and tag != type_tag(cls):
                resolved = resolve_class_from_tag(tag)
                if resolved is not None and issubclass(resolved, cls):
                    return resolved.model_validate(value)
            cls._assign_belongs_to(value)
            value = apply_key_defaults(cls.dynamic_keys(), value)
        return handler(value)

    # ── registry views ────────────────────────────────────────────────

    @classmethod
    def descendants(cls) -> List[type]:
        """Every registered class sharing this class's capability."""
        return cls.__mapper_registry__.descendants()

    @classmethod
    def subclasses(cls) -> List[type]:
        """Direct registered subclasses, in declaration order."""
        return cls.__mapper_registry__.subclasses(cls)

    @classmethod
    def append_extensions(cls, *bundles: type) -> None:
        cls.__mapper_registry__.append_extensions(*bundles)

    @classmethod
    def append_inclusions(cls, *bundles: type) -> None:
        cls.__mapper_registry__.append_inclusions(*bundles)

    @classmethod
    def logger(cls) -> Any:
        """The process-wide logger, reachable from classes and instances."""
        return config.logger()

    # ── keys ──────────────────────────────────────────────────────────

    @classmethod
    def key(
        cls,
        name: str,
        annotation: Any,
        default: Any = MISSING,
        *,
        default_factory: Any = None,
        required: bool = False,
    ) -> KeyDescriptor:
        """
        Declare a key after the class has been created.

        Instances built afterwards receive the key's default when it is
        absent from their input; present values are coerced by
        ``annotation`` (see :class:`~pydmongo.field_type.FieldTypeCategory`).
        Subclasses inherit the key.

        Raises
        ------
        ValueError
            If ``name`` is a field, or an attribute (method, property)
            the value would be hidden behind.
        """
        if name in cls.model_fields:
            raise ValueError(f"'{name}' is already a field of {cls.__name__}")
        if hasattr(cls, name):
            raise ValueError(
                f"'{name}' would shadow the attribute {cls.__name__}.{name}"
            )
        descriptor = declare_key(
            name,
            annotation,
            default,
            default_factory=default_factory,
            required=required,
        )
        cls.__dict__["__mapper_keys__"][name] = descriptor
        logger.debug(
            "Declared key '{}' ({}) on {}", name, descriptor.category, cls.__name__
        )
        return descriptor

    @classmethod
    def dynamic_keys(cls) -> Dict[str, KeyDescriptor]:
        """Keys declared with :meth:`key` on this class or an ancestor."""
        keys: Dict[str, KeyDescriptor] = {}
        for klass in reversed(cls.__mro__):
            keys.update(vars(klass).get("__mapper_keys__", {}))
        return keys

    @classmethod
    def keys(cls) -> Dict[str, KeyDescriptor]:
        """Union of static fields and dynamic keys, ancestors included."""
        keys = {
            name: KeyDescriptor.from_field(name, field_info)
            for name, field_info in cls.model_fields.items()
        }
        keys.update(cls.dynamic_keys())
        return keys

    # ── associations ──────────────────────────────────────────────────

    @classmethod
    def associations(cls) -> Dict[str, Association]:
        associations: Dict[str, Association] = {}
        for klass in reversed(cls.__mro__):
            associations.update(vars(klass).get("__mapper_associations__", {}))
        return associations

    @classmethod
    def belongs_to(
        cls,
        name: str,
        target: Any = None,
        foreign_key: Optional[str] = None,
    ) -> Association:
        """
        Reference a document by id. Declares the ``<name>_id`` key and a
        ``name`` property that loads (and assigns) the target.
        """
        association = belongs_to_association(cls, name, target, foreign_key)
        cls.key(association.foreign_key, Any)
        setattr(cls, name, belongs_to_property(association))
        cls.__dict__["__mapper_associations__"][name] = association
        return association

    @classmethod
    def many(
        cls,
        name: str,
        target: Any,
        polymorphic: bool = False,
        foreign_key: Optional[str] = None,
    ) -> Association:
        """
        Declare a one-to-many association.

        With an embedded target the children are stored inline as a
        ``List[target]`` key; with a document target ``name`` becomes a
        read-only property querying ``target`` by foreign key.
        """
        association = many_association(cls, name, target, polymorphic, foreign_key)
        if association.embedded:
            cls.key(name, List[association.target_class], default_factory=list)
        else:
            setattr(cls, name, many_documents_property(association))
        cls.__dict__["__mapper_associations__"][name] = association
        return association

    @classmethod
    def _assign_belongs_to(cls, data: Dict[str, Any]) -> None:
        # Constructor input may name the association itself (room=room);
        # only the foreign key is stored.
        for name, association in cls.associations().items():
            if association.kind == AssociationKind.BELONGS_TO and name in data:
                target = data.pop(name)
                data[association.foreign_key] = None if target is None else target.id

    # ── identity ──────────────────────────────────────────────────────

    def __eq__(self, other: object) -> bool:
        return (
            type(other) is type(self)
            and self.id is not None
            and cast(MapperModel, other).id is not None
            and self.id == cast(MapperModel, other).id
        )

    def __hash__(self) -> int:
        """
        Hash by ``(class, id)`` so equal instances hash equal. Without an
        id the hash is object identity, so the hash changes when
        ``save()`` assigns one: do not keep unsaved instances in sets or
        as dict keys across a save.
        """
        if self.id is None:
            return object.__hash__(self)
        return hash((type(self), self.id))

    def is_new(self) -> bool:
        """True until the instance has an id *and* has been persisted."""
        return self.id is None or not self._persisted

    @property
    def root_document(self) -> Optional["Document"]:
        return self._root_document

    def _link_embedded(self, root: "Document") -> None:
        values = list(self.__dict__.values())
        values.extend((self.__pydantic_extra__ or {}).values())
        for value in values:
            for child in _iter_embedded(value):
                child._root_document = root
                child._link_embedded(root)

    def clone(self: M) -> M:
        """
        Return a new, unsaved instance with a deep copy of every
        attribute except the id.
        """
        data = copy.deepcopy(self.model_dump(by_alias=True, exclude={"id"}))
        return type(self).model_validate(data)


# ──────────────────────────────────────────────────────────────────────
# Document – top-level, owns a collection
# ──────────────────────────────────────────────────────────────────────


class Document(MapperModel):
    """
    A top-level document.

    Configuration
    -------------
    Set ``__collection_name__``, ``__database_name__`` or
    ``__connection__`` in the class body, or call the ``set_*`` class
    methods later. Unset values fall back along the registered lineage
    and finally to the process defaults in :mod:`pydmongo.config`.
    Without an override, the collection name derives from the root
    ancestor's qualname: ``BloggyPoo.Post`` → ``"bloggy_poo.posts"``.

    Persistence
    -----------
    ``save`` / ``create`` / ``delete`` / ``find`` / ``find_all`` wrap
    the driver directly; the id is assigned on the first save.
    """

    __abstract__ = True
    __mapper_capability__ = "document"
    __mapper_registry__ = DOCUMENTS

    def model_post_init(self, context: Any, /) -> None:
        self._link_embedded(self)

    # ── configuration ─────────────────────────────────────────────────

    @classmethod
    def collection_name(cls) -> str:
        return config.resolve_collection_name(cls)

    @classmethod
    def set_collection_name(cls, name: str) -> None:
        cls.__mapper_registry__.configure(cls, collection_name=name)

    @classmethod
    def database_name(cls) -> Optional[str]:
        return config.resolve_database_name(cls)

    @classmethod
    def set_database_name(cls, name: str) -> None:
        cls.__mapper_registry__.configure(cls, database_name=name)

    @classmethod
    def connection(cls) -> MongoClient:
        return config.resolve_connection(cls)

    @classmethod
    def set_connection(cls, conn: MongoClient) -> None:
        cls.__mapper_registry__.configure(cls, connection=conn)

    @classmethod
    def database(cls) -> Database:
        return config.get_database(cls.connection(), cls.database_name())

    @classmethod
    def collection(cls) -> Collection:
        return config.collection(
            cls.connection(), cls.database_name(), cls.collection_name()
        )

    # ── Mongo documents ───────────────────────────────────────────────

    def to_mongo(self) -> Dict[str, Any]:
        """
        Serialise into a MongoDB document: ``_id``, ``_type``, every
        key, and embedded documents as nested mappings.
        """
        doc = self.model_dump(by_alias=True)
        if doc.get(ID_KEY) is None:
            doc.pop(ID_KEY, None)
        return doc

    @classmethod
    def from_mongo(cls: Type[D], doc: Mapping[str, Any]) -> D:
        """Materialise a stored document; the result counts as persisted."""
        instance = cast(D, cls.model_validate(doc))
        instance._persisted = True
        return instance

    @classmethod
    def _type_criteria(cls, query: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Restrict ``query`` to this class and its subclasses when the
        collection is shared with ancestors.
        """
        criteria = dict(query or {})
        registry = cls.__mapper_registry__
        if len(registry.lineage(cls)) > 1:
            tags = [type_tag(k) for k in [cls, *registry.all_subclasses(cls)]]
            criteria[TYPE_KEY] = {"$in": tags}
        return criteria

    # ── persistence ───────────────────────────────────────────────────

    def validate_keys(self) -> None:
        """Raise :class:`DocumentNotValid` if a required dynamic key is unset."""
        missing = missing_required_keys(
            self.dynamic_keys(), self.__pydantic_extra__ or {}
        )
        if missing:
            raise DocumentNotValid(type(self), missing)

    def save(self: D) -> D:
        self.validate_keys()
        if self.id is None:
            self.id = config.new_object_id()
        self.collection().replace_one({ID_KEY: self.id}, self.to_mongo(), upsert=True)
        self._persisted = True
        self.logger().debug("Saved {} '{}'", type(self).__name__, self.id)
        return self

    @classmethod
    def create(cls: Type[D], **attributes: Any) -> D:
        return cls(**attributes).save()

    def delete(self) -> None:
        if self.id is None:
            return
        self.collection().delete_one({ID_KEY: self.id})
        self._persisted = False
        self.logger().debug("Deleted {} '{}'", type(self).__name__, self.id)

    @classmethod
    def find(cls: Type[D], doc_id: Any) -> Optional[D]:
        raw = cls.collection().find_one(cls._type_criteria({ID_KEY: doc_id}))
        return cls.from_mongo(raw) if raw is not None else None

    @classmethod
    def find_or_raise(cls: Type[D], doc_id: Any) -> D:
        found = cls.find(doc_id)
        if found is None:
            raise DocumentNotFound(
                f"{cls.__name__} '{doc_id}' not found in '{cls.collection_name()}'"
            )
        return found

    @classmethod
    def find_all(cls: Type[D], query: Optional[Mapping[str, Any]] = None) -> List[D]:
        return [
            cls.from_mongo(raw) for raw in cls.collection().find(cls._type_criteria(query))
        ]

    @classmethod
    def count(cls, query: Optional[Mapping[str, Any]] = None) -> int:
        return cls.collection().count_documents(cls._type_criteria(query))

    @classmethod
    def delete_all(cls) -> int:
        """
        Remove every stored instance of this class. On the root of an
        inheritance tree this empties the whole collection.
        """
        criteria = cls._type_criteria()
        if not criteria:
            return config.remove_all(cls.collection())
        return cls.collection().delete_many(criteria).deleted_count


# ──────────────────────────────────────────────────────────────────────
# EmbeddedDocument – lives inside a Document
# ──────────────────────────────────────────────────────────────────────


class EmbeddedDocument(MapperModel):
    """
    A document stored inline in its parent.

    Embedded instances get an ``ObjectId`` at construction so they can
    be compared by identity. ``_root_document`` is ``None`` for an
    instance built on its own; it is set to the top-level
    :class:`Document` when the instance is built as part of one. The
    reference does not own the root.
    """

    __abstract__ = True
    __mapper_capability__ = "embedded_document"
    __mapper_registry__ = EMBEDDED_DOCUMENTS

    id: Any = Field(default_factory=ObjectId, alias=ID_KEY)

    def is_new(self) -> bool:
        """An embedded document is new for as long as its root is."""
        if self._root_document is not None:
            return self._root_document.is_new()
        return not self._persisted
