import gc
from typing import Optional

import pytest

from pydmongo import (
    DOCUMENTS,
    EMBEDDED_DOCUMENTS,
    Document,
    EmbeddedDocument,
    resolve_class_from_tag,
)
from pydmongo.registry import DocumentRegistry, find_class_by_name, type_tag
from tests.fixtures.models import Address, Chat, Enter, Exit, Item, Message, Person


# ──────────────────────────────────────────────────────────────────────
# Registration and hierarchy
# ──────────────────────────────────────────────────────────────────────


def test_declared_classes_are_descendants():
    descendants = Document.descendants()
    for cls in (Item, Person, Message, Enter, Exit, Chat):
        assert cls in descendants
    assert Address not in descendants
    assert Address in EmbeddedDocument.descendants()


def test_bases_are_not_registered():
    assert not DOCUMENTS.is_registered(Document)
    assert not EMBEDDED_DOCUMENTS.is_registered(EmbeddedDocument)


def test_abstract_intermediate_base_is_skipped():
    class Timestamped(Document):
        __abstract__ = True
        stamp: Optional[str] = None

    class Note(Timestamped):
        pass

    assert not DOCUMENTS.is_registered(Timestamped)
    assert DOCUMENTS.lineage(Note) == [Note]
    assert Note.collection_name() == "notes"


def test_lineage_and_parent():
    class Shape(Document):
        pass

    class Polygon(Shape):
        pass

    class Square(Polygon):
        pass

    assert DOCUMENTS.lineage(Square) == [Square, Polygon, Shape]
    assert DOCUMENTS.parent(Square) is Polygon
    assert DOCUMENTS.parent(Shape) is None
    assert DOCUMENTS.all_subclasses(Shape) == [Polygon, Square]
    assert Square.collection_name() == "shapes"


def test_register_twice_is_a_no_op():
    count = len(DOCUMENTS.descendants())
    DOCUMENTS.register(Item)
    assert len(DOCUMENTS.descendants()) == count


def test_discarded_classes_are_forgotten():
    registry = DocumentRegistry("document")

    class Temp:
        pass

    registry.register(Temp)
    assert len(registry.descendants()) == 1
    del Temp
    gc.collect()
    assert registry.descendants() == []


def test_configure_requires_registration():
    with pytest.raises(TypeError):
        DOCUMENTS.configure(Document, collection_name="nope")


# ──────────────────────────────────────────────────────────────────────
# Tags
# ──────────────────────────────────────────────────────────────────────


def test_type_tag_and_resolution():
    assert type_tag(Chat) == "tests.fixtures.models:Chat"
    assert resolve_class_from_tag("tests.fixtures.models:Chat") is Chat
    assert resolve_class_from_tag("tests.fixtures.models:Address") is Address


def test_local_classes_resolve_through_registry():
    class Sticker(Document):
        pass

    assert resolve_class_from_tag(type_tag(Sticker)) is Sticker


def test_unresolvable_tags():
    assert resolve_class_from_tag("no_colon") is None
    assert resolve_class_from_tag("tests.fixtures.models:Missing") is None
    assert resolve_class_from_tag("no.such.module:Thing") is None
    # Importable, but not a mapper class.
    assert resolve_class_from_tag("tests.fixtures.models:WindowSize") is None


def test_find_class_by_name():
    assert find_class_by_name("Room") is not None
    assert find_class_by_name("Address") is Address
    assert find_class_by_name("Nothing") is None


# ──────────────────────────────────────────────────────────────────────
# Extensions and inclusions
# ──────────────────────────────────────────────────────────────────────


def test_append_extensions_before_declaration():
    class Finders:
        def find_by_label(cls, label):
            return f"{cls.__name__}:{label}"

    Document.append_extensions(Finders)

    class Poster(Document):
        pass

    assert Poster.find_by_label("x") == "Poster:x"
    assert Finders in DOCUMENTS.extensions


def test_append_extensions_after_declaration():
    class Banner(Document):
        pass

    class Counters:
        def tally(cls):
            return cls.__name__

    Document.append_extensions(Counters)
    assert Banner.tally() == "Banner"
    assert Item.tally() == "Item"


def test_append_inclusions_before_declaration():
    class Shouting:
        def shout(self):
            return self.name.upper()

    Document.append_inclusions(Shouting)

    class Crier(Document):
        name: Optional[str] = None

    assert Crier(name="hear ye").shout() == "HEAR YE"


def test_append_inclusions_after_declaration():
    class Describe:
        def describe(self):
            return f"{type(self).__name__} {self.name}"

    Document.append_inclusions(Describe)
    assert Item(name="cup").describe() == "Item cup"
    assert Describe in DOCUMENTS.inclusions


def test_bundles_do_not_shadow_class_attributes():
    class Labeled(Document):
        def label(self):
            return "own"

    class Labels:
        def label(self):
            return "bundle"

    Document.append_inclusions(Labels)
    assert Labeled().label() == "own"


def test_embedded_bundles_are_separate():
    class Greeting:
        def greet(self):
            return "hi"

    EmbeddedDocument.append_inclusions(Greeting)
    assert Address().greet() == "hi"
    assert not hasattr(Item(), "greet")
