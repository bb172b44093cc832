from datetime import datetime
from enum import Enum, IntEnum, StrEnum
from typing import Any, Dict, List, Optional, Union

import pytest
import strenum
from bson import ObjectId
from pydantic import Field

from pydmongo import (
    Document,
    EmbeddedDocument,
    FieldTypeCategory,
    identify_field_type_category,
    get_inner_type,
)
from tests.fixtures.models import Address, Item, WindowSize


# ──────────────────────────────────────────────────────────────────────
# Scalar categories
# ──────────────────────────────────────────────────────────────────────


class Color(StrEnum):
    RED = "red"


class Shade(strenum.StrEnum):
    DARK = "dark"


class Level(IntEnum):
    LOW = 1


class Plain(Enum):
    A = "a"


@pytest.mark.parametrize(
    "annotation, expected",
    [
        (str, FieldTypeCategory.PY_LITERAL),
        (Optional[int], FieldTypeCategory.PY_LITERAL),
        (bool, FieldTypeCategory.PY_LITERAL),
        (Optional[datetime], FieldTypeCategory.DATETIME),
        (ObjectId, FieldTypeCategory.OBJECT_ID),
        (Optional[Color], FieldTypeCategory.STR_ENUM),
        (Shade, FieldTypeCategory.STR_ENUM),
        (Optional[Level], FieldTypeCategory.INT_ENUM),
        (Address, FieldTypeCategory.EMBEDDED_DOC),
        (Optional[Address], FieldTypeCategory.EMBEDDED_DOC),
        (List[Address], FieldTypeCategory.LIST_EMBEDDED_DOC),
        (List[int], FieldTypeCategory.PY_JSON),
        (Dict[str, float], FieldTypeCategory.PY_JSON),
        (WindowSize, FieldTypeCategory.OPAQUE),
        (Optional[WindowSize], FieldTypeCategory.OPAQUE),
        (Any, FieldTypeCategory.OPAQUE),
    ],
)
def test_category_assignment(annotation, expected):
    assert identify_field_type_category(annotation, "value") is expected


@pytest.mark.parametrize("name", ["id", "_id", "_type"])
def test_reserved_names(name):
    assert identify_field_type_category(str, name) is FieldTypeCategory.RESERVED


# ──────────────────────────────────────────────────────────────────────
# Rejected annotations
# ──────────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "annotation",
    [
        Optional[List[int]],
        Optional[Dict[str, int]],
        Union[int, str],
        Dict[int, str],
        Plain,
        Item,
        Optional[Item],
        List[Item],
    ],
)
def test_unsupported_annotations_are_rejected(annotation):
    with pytest.raises(TypeError):
        identify_field_type_category(annotation, "bad")


def test_unsupported_field_is_rejected_at_declaration():
    with pytest.raises(TypeError):

        class BadOptionalList(Document):
            bad: Optional[List[int]] = None


def test_document_field_is_rejected_at_declaration():
    """Documents are referenced through associations, never nested."""
    with pytest.raises(TypeError):

        class Holder(EmbeddedDocument):
            item: Optional[Item] = None


def test_embedded_fields_are_accepted_at_declaration():
    class Parcel(Document):
        origin: Optional[Address] = None
        stops: List[Address] = Field(default_factory=list)

    assert Parcel.keys()["origin"].category is FieldTypeCategory.EMBEDDED_DOC
    assert Parcel.keys()["stops"].category is FieldTypeCategory.LIST_EMBEDDED_DOC


def test_get_inner_type():
    assert get_inner_type(Optional[int]) is int
    assert get_inner_type(List[Address]) is Address
    with pytest.raises(AssertionError):
        get_inner_type(int)


def test_forward_reference_is_checked_on_rebuild():
    class Crate(Document):
        content: Optional["Cargo"] = None

    assert not Crate.__pydantic_complete__

    class Cargo(Document):
        pass

    with pytest.raises(TypeError):
        Crate.model_rebuild()


def test_forward_reference_to_embedded_passes_rebuild():
    class Shelf(Document):
        box: Optional["Carton"] = None

    class Carton(EmbeddedDocument):
        pass

    assert Shelf.model_rebuild() is True
    assert Shelf.keys()["box"].category is FieldTypeCategory.EMBEDDED_DOC
