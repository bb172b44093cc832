from typing import Optional

import pytest

from pydmongo import AssociationKind, Document, EmbeddedDocument
from tests.fixtures.models import Chat, Enter, Exit, Message, Room


def test_association_metadata():
    room = Message.associations()["room"]
    assert room.kind is AssociationKind.BELONGS_TO
    assert room.foreign_key == "room_id"
    assert room.target_class is Room
    for cls in (Enter, Exit, Chat):
        assert "room" in cls.associations()

    messages = Room.associations()["messages"]
    assert messages.kind is AssociationKind.MANY
    assert messages.foreign_key == "room_id"
    assert messages.polymorphic
    assert not messages.embedded


def test_belongs_to_declares_foreign_key():
    assert "room_id" in Message.keys()
    assert Message().room_id is None
    assert Message().room is None


def test_belongs_to_assignment(chat_room):
    message = Chat(body="hey")
    message.room = chat_room
    assert message.room_id == chat_room.id
    message.save()
    assert Chat.find(message.id).room == chat_room
    message.room = None
    assert message.room_id is None


def test_polymorphic_many(chat_room):
    messages = sorted(chat_room.messages, key=lambda m: m.position)
    assert [type(m) for m in messages] == [Enter, Chat, Exit]
    assert all(m.room == chat_room for m in messages)
    assert Room(name="empty").messages == []


def test_explicit_target_and_foreign_key():
    class Author(Document):
        name: Optional[str] = None

    class Book(Document):
        pass

    Book.belongs_to("writer", Author, foreign_key="author_ref")
    Author.many("books", Book, foreign_key="author_ref")

    author = Author.create(name="Ursula")
    book = Book.create(writer=author)
    assert book.author_ref == author.id
    assert Book.find(book.id).writer == author
    assert author.books == [book]


def test_target_named_before_declaration():
    class Cart(Document):
        pass

    Cart.belongs_to("shopper")
    with pytest.raises(LookupError):
        Cart(shopper_id="x").shopper

    class Shopper(Document):
        pass

    shopper = Shopper.create()
    assert Cart(shopper_id=shopper.id).shopper == shopper


def test_many_embedded_is_stored_inline():
    class Track(EmbeddedDocument):
        title: Optional[str] = None

    class Album(Document):
        pass

    association = Album.many("tracks", Track)
    assert association.embedded
    assert Album().tracks == []

    album = Album.create(tracks=[{"title": "One"}, Track(title="Two")])
    stored = Album.collection().find_one({"_id": album.id})
    assert [t["title"] for t in stored["tracks"]] == ["One", "Two"]

    found = Album.find(album.id)
    assert [t.title for t in found.tracks] == ["One", "Two"]
    assert all(t.root_document is found for t in found.tracks)


def test_many_embedded_target_given_by_name():
    class Pup(EmbeddedDocument):
        name: Optional[str] = None

    class Kennel(Document):
        pass

    association = Kennel.many("pups", "Pup")
    assert association.embedded
    assert association.target_class is Pup

    kennel = Kennel(pups=[{}, {"name": "Rex"}])
    assert [type(p) for p in kennel.pups] == [Pup, Pup]
    assert kennel.pups[1].name == "Rex"
    assert all(p.root_document is kennel for p in kennel.pups)


def test_many_names_embedded_class_declared_later():
    class Yard(Document):
        pass

    association = Yard.many("moles", "Mole")
    assert not association.embedded

    class Mole(EmbeddedDocument):
        pass

    with pytest.raises(TypeError):
        Yard().moles
