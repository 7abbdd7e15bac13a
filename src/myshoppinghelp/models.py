"""Typed payloads exchanged with the shopping-list REST API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, TypeVar

from myshoppinghelp.refs import Ref, RefParseError

_LOG = logging.getLogger("myshoppinghelp.models")

T = TypeVar("T")


class ModelDecodeError(ValueError):
    """Raised when a JSON value does not match the expected model shape."""


# --------------------------------------------------------------------------- #
# decoding helpers                                                            #
# --------------------------------------------------------------------------- #


def _require_mapping(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ModelDecodeError(f"{what}: expected an object, got {type(data).__name__}")
    return data


def _require_str(data: dict[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ModelDecodeError(f"{what}.{key}: expected a string")
    return value


def _optional(data: dict[str, Any], key: str, kind: type | tuple[type, ...], what: str) -> Any:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int subclass; never accept it where a number is expected
    if isinstance(value, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise ModelDecodeError(f"{what}.{key}: unexpected boolean")
    if not isinstance(value, kind):
        raise ModelDecodeError(f"{what}.{key}: unexpected type {type(value).__name__}")
    return value


def _optional_ref(data: dict[str, Any], what: str) -> Ref | None:
    raw = data.get("ref")
    if raw is None:
        return None
    try:
        return Ref.parse(raw)
    except RefParseError as exc:
        raise ModelDecodeError(f"{what}.ref: {exc}") from exc


def decode_tolerant(
    values: Any, decoder: Callable[[Any], T], what: str
) -> list[T]:
    """Decode every element of *values*, dropping the ones that fail."""
    if values is None:
        return []
    if not isinstance(values, list):
        raise ModelDecodeError(f"{what}: expected an array")
    decoded: list[T] = []
    for index, value in enumerate(values):
        try:
            decoded.append(decoder(value))
        except ModelDecodeError as exc:
            _LOG.debug("Dropping malformed %s at index %d: %s", what, index, exc)
    return decoded


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


# --------------------------------------------------------------------------- #
# lists & items                                                               #
# --------------------------------------------------------------------------- #


class ItemType(str, Enum):
    RECIPE = "recipe"
    INGREDIENT = "ingredient"


@dataclass(frozen=True, slots=True)
class ListItem:
    id: str
    type: ItemType
    name: str
    ref: Ref | None = None
    url: str | None = None
    image_url: str | None = None
    checked: bool | None = None
    quantity: float | None = None
    attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "ListItem":
        obj = _require_mapping(data, "ListItem")
        try:
            item_type = ItemType(obj.get("type"))
        except ValueError as exc:
            raise ModelDecodeError(f"ListItem.type: {obj.get('type')!r} is not supported") from exc

        attributes = obj.get("attributes") or {}
        if not isinstance(attributes, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in attributes.items()
        ):
            raise ModelDecodeError("ListItem.attributes: expected a string mapping")

        quantity = _optional(obj, "quantity", (int, float), "ListItem")
        return cls(
            id=_require_str(obj, "id", "ListItem"),
            type=item_type,
            name=_require_str(obj, "name", "ListItem"),
            ref=_optional_ref(obj, "ListItem"),
            url=_optional(obj, "url", str, "ListItem"),
            image_url=_optional(obj, "imageUrl", str, "ListItem"),
            checked=_optional(obj, "checked", bool, "ListItem"),
            quantity=float(quantity) if quantity is not None else None,
            attributes=dict(attributes),
        )


@dataclass(frozen=True, slots=True)
class ShoppingList:
    """Server-side list mirrored by the client; ``items`` is never ``None``."""

    id: str
    ref: Ref | None = None
    items: list[ListItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "ShoppingList":
        obj = _require_mapping(data, "ShoppingList")
        raw_items = obj.get("items")
        items = (
            decode_tolerant(raw_items, ListItem.from_dict, "list item")
            if isinstance(raw_items, list)
            else []
        )
        return cls(
            id=_require_str(obj, "id", "ShoppingList"),
            ref=_optional_ref(obj, "ShoppingList"),
            items=items,
        )


@dataclass(frozen=True, slots=True)
class CreatedList:
    id: str

    @classmethod
    def from_dict(cls, data: Any) -> "CreatedList":
        return cls(id=_require_str(_require_mapping(data, "CreatedList"), "id", "CreatedList"))


# --------------------------------------------------------------------------- #
# write-only payloads                                                         #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class ListCreatePayload:
    ref: Ref
    unique_items: bool = True
    checkboxes: bool = False
    quantities: bool = False
    name: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "ref": self.ref.format(),
            "name": self.name if self.name is not None else self.ref.type.value,
            "uniqueItems": self.unique_items,
            "checkboxes": self.checkboxes,
            "quantities": self.quantities,
        }


@dataclass(frozen=True, slots=True)
class ListItemCreatePayload:
    type: ItemType
    name: str
    ref: Ref | None = None
    url: str | None = None
    image_url: str | None = None
    checked: bool | None = None
    quantity: float | None = None
    attributes: dict[str, str] | None = None

    def to_payload(self) -> dict[str, Any]:
        return _compact(
            {
                "ref": self.ref.format() if self.ref is not None else None,
                "type": ItemType(self.type).value,
                "name": self.name,
                "url": self.url,
                "imageUrl": self.image_url,
                "checked": self.checked,
                "quantity": self.quantity,
                "attributes": self.attributes,
            }
        )


@dataclass(frozen=True, slots=True)
class ListItemUpdatePayload:
    id: str
    type: ItemType
    name: str
    ref: Ref | None = None
    url: str | None = None
    image_url: str | None = None
    checked: bool | None = None
    quantity: float | None = None
    attributes: dict[str, str] | None = None

    @classmethod
    def from_item(cls, item: ListItem, **changes: Any) -> "ListItemUpdatePayload":
        """Build an update payload from an existing item, applying *changes*."""
        values = {
            "id": item.id,
            "type": item.type,
            "name": item.name,
            "ref": item.ref,
            "url": item.url,
            "image_url": item.image_url,
            "checked": item.checked,
            "quantity": item.quantity,
            "attributes": dict(item.attributes) or None,
        }
        values.update(changes)
        return cls(**values)

    def to_payload(self) -> dict[str, Any]:
        return _compact(
            {
                "id": self.id,
                "ref": self.ref.format() if self.ref is not None else None,
                "type": ItemType(self.type).value,
                "name": self.name,
                "url": self.url,
                "imageUrl": self.image_url,
                "checked": self.checked,
                "quantity": self.quantity,
                "attributes": self.attributes,
            }
        )


# --------------------------------------------------------------------------- #
# recipe metadata                                                             #
# --------------------------------------------------------------------------- #


def _lenient_str(obj: dict[str, Any], key: str) -> str | None:
    value = obj.get(key)
    return value if isinstance(value, str) else None


def _str_or_joined(obj: dict[str, Any], key: str) -> str | None:
    value = obj.get(key)
    if isinstance(value, str):
        return value
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return ",".join(value)
    return None


def _image_url(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, list) and value and isinstance(value[0], str):
        return value[0]
    if isinstance(value, dict) and isinstance(value.get("url"), str):
        return value["url"]
    return None


@dataclass(frozen=True, slots=True)
class Nutrition:
    calories: str | None = None
    carbohydrate_content: str | None = None
    fat_content: str | None = None
    fiber_content: str | None = None
    protein_content: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "Nutrition | None":
        if not isinstance(data, dict):
            return None
        return cls(
            calories=_lenient_str(data, "calories"),
            carbohydrate_content=_lenient_str(data, "carbohydrateContent"),
            fat_content=_lenient_str(data, "fatContent"),
            fiber_content=_lenient_str(data, "fiberContent"),
            protein_content=_lenient_str(data, "proteinContent"),
        )


@dataclass(frozen=True, slots=True)
class Metadata:
    """schema.org ``Recipe`` fields extracted from a page's structured data."""

    name: str | None = None
    description: str | None = None
    image: str | None = None
    prep_time: str | None = None
    cook_time: str | None = None
    total_time: str | None = None
    recipe_category: str | None = None
    recipe_cuisine: str | None = None
    nutrition: Nutrition | None = None

    @classmethod
    def from_objects(cls, objects: Any) -> "Metadata":
        """Pick the first ``@type == "Recipe"`` entry out of *objects*.

        Individual fields are decoded leniently; the absence of a Recipe entry
        is a hard failure.
        """
        if not isinstance(objects, list):
            raise ModelDecodeError("RecipeMetadata.objects: expected an array")
        for obj in objects:
            if not isinstance(obj, dict):
                raise ModelDecodeError("RecipeMetadata.objects: expected objects")
            if obj.get("@type") != "Recipe":
                continue
            return cls(
                name=_lenient_str(obj, "name"),
                description=_lenient_str(obj, "description"),
                image=_image_url(obj.get("image")),
                prep_time=_lenient_str(obj, "prepTime"),
                cook_time=_lenient_str(obj, "cookTime"),
                total_time=_lenient_str(obj, "totalTime"),
                recipe_category=_str_or_joined(obj, "recipeCategory"),
                recipe_cuisine=_str_or_joined(obj, "recipeCuisine"),
                nutrition=Nutrition.from_dict(obj.get("nutrition")),
            )
        raise ModelDecodeError("Could not find or decode object with type Recipe")


@dataclass(frozen=True, slots=True)
class RecipeMetadata:
    id: str
    url: str
    authority: str
    title: str
    metadata: Metadata | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "RecipeMetadata":
        obj = _require_mapping(data, "RecipeMetadata")
        objects = obj.get("objects")
        return cls(
            id=_require_str(obj, "id", "RecipeMetadata"),
            url=_require_str(obj, "url", "RecipeMetadata"),
            authority=_require_str(obj, "authority", "RecipeMetadata"),
            title=_require_str(obj, "title", "RecipeMetadata"),
            metadata=Metadata.from_objects(objects) if objects is not None else None,
        )


def decode_lists(values: Any) -> list[ShoppingList]:
    """Decode the ``GET lists`` response, dropping malformed lists."""
    return decode_tolerant(values, ShoppingList.from_dict, "list")


__all__ = [
    "CreatedList",
    "ItemType",
    "ListCreatePayload",
    "ListItem",
    "ListItemCreatePayload",
    "ListItemUpdatePayload",
    "Metadata",
    "ModelDecodeError",
    "Nutrition",
    "RecipeMetadata",
    "ShoppingList",
    "decode_lists",
    "decode_tolerant",
]
