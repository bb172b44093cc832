import threading
import types
import weakref
from importlib import import_module
from types import ModuleType
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar, cast

from loguru import logger

from .config import ClassConfig

"""
pydmongo.registry
=================
Process-wide tables of mapper classes.

There is one :class:`DocumentRegistry` per capability:

* :data:`DOCUMENTS` – top-level documents (own collection).
* :data:`EMBEDDED_DOCUMENTS` – documents stored inside another one.

A registry records, for every class that adopts its capability:

* the class itself (weakly, so throw-away classes can be collected),
* its parent (nearest registered ancestor) and direct subclasses, in
  declaration order,
* its frozen :class:`~pydmongo.config.ClassConfig`,
* its polymorphic tag ``"<module>:<qualname>"``.

It also holds the ordered *bundles* appended after the fact. A bundle
is a plain class whose public attributes are copied onto every
registered class: immediately for classes that already exist, and at
registration time for classes declared later.

* Extensions become class-level methods (plain functions are wrapped
  in ``classmethod``).
* Inclusions become instance methods.

Registration happens automatically from
``MapperModel.__pydantic_init_subclass__``; callers rarely need
:meth:`DocumentRegistry.register` directly.
"""

M = TypeVar("M", bound=type)


def type_tag(model_type: type) -> str:
    """Fully-qualified discriminator tag ``"<module>:<qualname>"``."""
    return f"{model_type.__module__}:{model_type.__qualname__}"


def _apply_bundle(model_type: type, bundle: type, class_level: bool) -> None:
    for name, value in vars(bundle).items():
        if name.startswith("__") and name.endswith("__"):
            continue
        if name in vars(model_type):
            # Never shadow something the class defines itself.
            continue
        if class_level and isinstance(value, types.FunctionType):
            value = classmethod(value)
        setattr(model_type, name, value)


class DocumentRegistry:
    """Registry of the classes sharing one capability."""

    def __init__(self, capability: str) -> None:
        self.capability = capability
        self._lock = threading.RLock()
        self._descendants: List[weakref.ref[type]] = []
        self._parents: "weakref.WeakKeyDictionary[type, weakref.ref[type]]" = (
            weakref.WeakKeyDictionary()
        )
        self._subclasses: "weakref.WeakKeyDictionary[type, List[weakref.ref[type]]]" = (
            weakref.WeakKeyDictionary()
        )
        self._configs: "weakref.WeakKeyDictionary[type, ClassConfig]" = (
            weakref.WeakKeyDictionary()
        )
        self._tags: Dict[str, weakref.ref[type]] = {}
        self._extensions: List[type] = []
        self._inclusions: List[type] = []

    def __repr__(self) -> str:
        return f"DocumentRegistry({self.capability!r}, {len(self.descendants())} classes)"

    # ── registration ──────────────────────────────────────────────────

    def is_registered(self, model_type: type) -> bool:
        return model_type in self._configs

    def register(self, model_type: M, config: Optional[ClassConfig] = None) -> M:
        """
        Add ``model_type`` to the registry and apply every bundle
        appended so far. Registering the same class twice is a no-op.
        """
        with self._lock:
            if self.is_registered(model_type):
                return model_type

            self._configs[model_type] = config or ClassConfig()
            self._descendants.append(weakref.ref(model_type))
            self._tags[type_tag(model_type)] = weakref.ref(model_type)

            parent = self._nearest_registered_ancestor(model_type)
            if parent is not None:
                self._parents[model_type] = weakref.ref(parent)
                self._subclasses.setdefault(parent, []).append(weakref.ref(model_type))

            for bundle in self._extensions:
                _apply_bundle(model_type, bundle, class_level=True)
            for bundle in self._inclusions:
                _apply_bundle(model_type, bundle, class_level=False)

        logger.debug(
            "Registered {} '{}' (parent: {})",
            self.capability,
            type_tag(model_type),
            parent.__name__ if parent is not None else None,
        )
        return model_type

    def _nearest_registered_ancestor(self, model_type: type) -> Optional[type]:
        for base in model_type.__mro__[1:]:
            if self.is_registered(base):
                return base
        return None

    # ── queries ───────────────────────────────────────────────────────

    @staticmethod
    def _alive(refs: Iterable[weakref.ref[type]]) -> List[type]:
        return [cls for cls in (ref() for ref in refs) if cls is not None]

    def descendants(self) -> List[type]:
        """Every live registered class. Order carries no meaning."""
        with self._lock:
            self._descendants = [ref for ref in self._descendants if ref() is not None]
            return self._alive(self._descendants)

    def subclasses(self, model_type: type) -> List[type]:
        """Direct registered subclasses of ``model_type``, in declaration order."""
        with self._lock:
            return self._alive(self._subclasses.get(model_type, []))

    def all_subclasses(self, model_type: type) -> List[type]:
        """Recursively collect *all* registered subclasses of ``model_type``."""
        subs: List[type] = []
        for sub in self.subclasses(model_type):
            subs.append(sub)
            subs.extend(self.all_subclasses(sub))
        return subs

    def parent(self, model_type: type) -> Optional[type]:
        ref = self._parents.get(model_type)
        return ref() if ref is not None else None

    def lineage(self, model_type: type) -> List[type]:
        """
        ``model_type`` followed by its registered ancestors, nearest
        first; the last element is the root of the inheritance tree.
        Unregistered classes (abstract bases) yield an empty list.
        """
        if not self.is_registered(model_type):
            return []
        chain: List[type] = []
        current: Optional[type] = model_type
        while current is not None:
            chain.append(current)
            current = self.parent(current)
        return chain

    def resolve_tag(self, tag: str) -> Optional[type]:
        ref = self._tags.get(tag)
        return ref() if ref is not None else None

    # ── per-class configuration ───────────────────────────────────────

    def config_for(self, model_type: type) -> ClassConfig:
        return self._configs.get(model_type) or ClassConfig()

    def configure(self, model_type: type, **overrides: Any) -> ClassConfig:
        """
        Replace the config of ``model_type`` with a copy carrying
        ``overrides``. Other classes and the process defaults are left
        untouched.
        """
        with self._lock:
            if not self.is_registered(model_type):
                raise TypeError(
                    f"{model_type.__name__} is not a registered {self.capability}"
                )
            updated = self.config_for(model_type).model_copy(update=overrides)
            self._configs[model_type] = updated
        logger.debug("Configured '{}': {}", type_tag(model_type), overrides)
        return updated

    # ── bundles ───────────────────────────────────────────────────────

    @property
    def extensions(self) -> List[type]:
        return list(self._extensions)

    @property
    def inclusions(self) -> List[type]:
        return list(self._inclusions)

    def append_extensions(self, *bundles: type) -> None:
        """Add class-level methods to every current and future class."""
        self._append(bundles, self._extensions, class_level=True)

    def append_inclusions(self, *bundles: type) -> None:
        """Add instance methods to every current and future class."""
        self._append(bundles, self._inclusions, class_level=False)

    def _append(self, bundles: Iterable[type], store: List[type], class_level: bool) -> None:
        with self._lock:
            for bundle in bundles:
                store.append(bundle)
                targets = self.descendants()
                for model_type in targets:
                    _apply_bundle(model_type, bundle, class_level=class_level)
                logger.debug(
                    "Appended {} '{}' to {} {} class(es)",
                    "extension" if class_level else "inclusion",
                    bundle.__name__,
                    len(targets),
                    self.capability,
                )

    def clear_bundles(self) -> None:
        """
        Forget appended bundles. Attributes already copied onto classes
        stay in place; intended for tests.
        """
        with self._lock:
            self._extensions.clear()
            self._inclusions.clear()


DOCUMENTS = DocumentRegistry("document")
EMBEDDED_DOCUMENTS = DocumentRegistry("embedded_document")

_REGISTRIES = (DOCUMENTS, EMBEDDED_DOCUMENTS)


def find_class_by_name(name: str) -> Optional[type]:
    """
    Look up a registered class by its bare ``__name__``. The most
    recently registered match wins.
    """
    for registry in _REGISTRIES:
        for cls in reversed(registry.descendants()):
            if cls.__name__ == name:
                return cls
    return None


def resolve_class_from_tag(fq_tag: str) -> Type[Any] | None:
    """
    Resolve a fully-qualified discriminator tag into a registered class.

    Tag format
    ----------
    ``"<module.path>:<QualName>"``. The registries are consulted first,
    which also covers classes declared inside functions. Otherwise the
    module is imported and the qualname walked attribute by attribute.
    """
    for registry in _REGISTRIES:
        resolved = registry.resolve_tag(fq_tag)
        if resolved is not None:
            return resolved

    try:
        mod_path, qualname = fq_tag.split(":", 1)
    except ValueError:
        logger.error("Malformed discriminator '{}'", fq_tag)
        return None

    try:
        module: ModuleType = import_module(mod_path)
        obj: Any = module
        for attr in qualname.split("."):
            obj = getattr(obj, attr)
    except (ImportError, AttributeError) as exc:
        logger.error("Discriminator '{}' could not be resolved: {}", fq_tag, exc)
        return None

    if isinstance(obj, type) and any(r.is_registered(obj) for r in _REGISTRIES):
        logger.debug("Resolved discriminator '{}' → {}", fq_tag, obj)
        return cast(Type[Any], obj)
    logger.warning(
        "Tag '{}' resolved to {} which is *not* a registered mapper class",
        fq_tag,
        obj,
    )
    return None
