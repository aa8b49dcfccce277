"""Fixed two-item catalog. Prices are deployment settings, never user input."""

from dataclasses import dataclass
from typing import Optional, Union

from foodstall.core.config import Settings, get_settings
from foodstall.exceptions import UnknownItem
from foodstall.models import ItemType


@dataclass(frozen=True)
class CatalogEntry:
    item_type: ItemType
    label: str
    unit_price: int


_LABELS = {
    ItemType.APPLE: "Apple",
    ItemType.BANANA: "Banana",
}


def get_catalog(settings: Optional[Settings] = None) -> dict[ItemType, CatalogEntry]:
    settings = settings or get_settings()
    prices = {
        ItemType.APPLE: settings.apple_price,
        ItemType.BANANA: settings.banana_price,
    }
    return {
        item_type: CatalogEntry(item_type, _LABELS[item_type], prices[item_type])
        for item_type in ItemType
    }


def parse_item_type(value: Union[str, ItemType]) -> ItemType:
    """Coerce a raw value to an ItemType, raising UnknownItem otherwise."""
    if isinstance(value, ItemType):
        return value
    try:
        return ItemType(str(value).lower())
    except ValueError:
        raise UnknownItem(f"Unknown item type: {value!r}")


def price_for(item_type: Union[str, ItemType], settings: Optional[Settings] = None) -> int:
    return get_catalog(settings)[parse_item_type(item_type)].unit_price
