"""
Domain model for the flipping trade history.

An account owns its flipping items (each with its offer history) and its
recipe flip groups. Offers are owned by exactly one item; partial offers and
the per-slot "last offer" map refer to offers by uuid and are re-resolved
when loaded from the store.

Every class converts to and from the flat JSON document layout used before
the SQLite store existed (camelCase keys). from_dict raises KeyError,
TypeError or ValueError for documents that do not have the expected shape.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from flipping.database.utils import format_db_timestamp, parse_db_timestamp

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Trade slots available to an account
SLOT_COUNT = 8


def _require_dict(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise TypeError(f"{what} must be an object, got {type(data).__name__}")
    return data


def _slot_key(key: Any) -> int:
    slot = int(key)
    if not 0 <= slot < SLOT_COUNT:
        raise ValueError(f"slot {slot} out of range 0..{SLOT_COUNT - 1}")
    return slot


def instant_from_json(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp from a legacy document.

    Accepts ISO-8601 strings, epoch milliseconds, or {"seconds", "nanos"}
    objects. Returns None for None.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return _EPOCH + timedelta(milliseconds=value)
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("epochSecond"))
        if seconds is None:
            raise ValueError(f"Invalid timestamp: {value!r}")
        nanos = value.get("nanos", 0)
        return _EPOCH + timedelta(seconds=seconds, microseconds=nanos // 1000)
    if isinstance(value, str):
        parsed = parse_db_timestamp(value)
        if parsed is None:
            raise ValueError(f"Invalid timestamp: {value!r}")
        return parsed
    raise ValueError(f"Invalid timestamp: {value!r}")


def instant_to_json(value: Optional[datetime]) -> Optional[str]:
    return format_db_timestamp(value)


class OfferState(Enum):
    """State of a trade slot offer. Stored by name."""

    EMPTY = "EMPTY"
    BUYING = "BUYING"
    BOUGHT = "BOUGHT"
    CANCELLED_BUY = "CANCELLED_BUY"
    SELLING = "SELLING"
    SOLD = "SOLD"
    CANCELLED_SELL = "CANCELLED_SELL"

    @property
    def is_complete(self) -> bool:
        return self in (OfferState.BOUGHT, OfferState.SOLD)


@dataclass
class OfferEvent:
    """
    A single market offer event observed in a trade slot.

    The uuid is assigned once at creation and must be reused for the same
    logical offer across saves; partial offers and slot pointers find the
    event by it.
    """

    uuid: str
    is_buy: bool
    item_id: int
    current_quantity_in_trade: int
    price: int
    time: datetime
    slot: int
    state: OfferState
    tick_arrived_at: int = 0
    ticks_since_first_offer: int = 0
    total_quantity_in_trade: int = 0
    trade_started_at: Optional[datetime] = None
    before_login: bool = False

    @classmethod
    def create(cls, **kwargs: Any) -> "OfferEvent":
        """Create an event with a freshly assigned uuid."""
        return cls(uuid=str(uuid4()), **kwargs)

    @property
    def is_complete(self) -> bool:
        return self.state.is_complete

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "uuid": self.uuid,
            "buy": self.is_buy,
            "itemId": self.item_id,
            "currentQuantityInTrade": self.current_quantity_in_trade,
            "price": self.price,
            "time": instant_to_json(self.time),
            "slot": self.slot,
            "state": self.state.name,
            "tickArrivedAt": self.tick_arrived_at,
            "ticksSinceFirstOffer": self.ticks_since_first_offer,
            "totalQuantityInTrade": self.total_quantity_in_trade,
            "tradeStartedAt": instant_to_json(self.trade_started_at),
            "beforeLogin": self.before_login,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfferEvent":
        """Create from dictionary."""
        data = _require_dict(data, "offer event")
        time = instant_from_json(data["time"])
        if time is None:
            raise ValueError("offer event has no time")
        return cls(
            uuid=data.get("uuid") or str(uuid4()),
            is_buy=bool(data.get("buy", False)),
            item_id=int(data["itemId"]),
            current_quantity_in_trade=int(data.get("currentQuantityInTrade", 0)),
            price=int(data.get("price", 0)),
            time=time,
            slot=int(data.get("slot", 0)),
            state=OfferState[data.get("state", OfferState.EMPTY.name)],
            tick_arrived_at=int(data.get("tickArrivedAt", 0)),
            ticks_since_first_offer=int(data.get("ticksSinceFirstOffer", 0)),
            total_quantity_in_trade=int(data.get("totalQuantityInTrade", 0)),
            trade_started_at=instant_from_json(data.get("tradeStartedAt")),
            before_login=bool(data.get("beforeLogin", False)),
        )


@dataclass
class FlippingItem:
    """An item an account has traded, with its offer history."""

    item_id: int
    item_name: str
    total_ge_limit: int = 0
    flipped_by: Optional[str] = None
    valid_flipping_panel_item: bool = True
    favorite: bool = False
    favorite_code: str = "1"
    ge_limit_reset_time: Optional[datetime] = None
    items_bought_this_limit_window: int = 0
    history: List[OfferEvent] = field(default_factory=list)

    @staticmethod
    def get_profit(offers: List[OfferEvent]) -> int:
        """
        Profit realised by the completed offers in a history.

        Matched quantity (the smaller of units bought and sold) times the
        difference between the average sell and average buy price.
        """
        bought = sold = 0
        buy_value = sell_value = 0
        for offer in offers:
            if offer.state == OfferState.EMPTY:
                continue
            qty = offer.current_quantity_in_trade
            if offer.is_buy:
                bought += qty
                buy_value += qty * offer.price
            else:
                sold += qty
                sell_value += qty * offer.price

        matched = min(bought, sold)
        if matched == 0:
            return 0
        return int(matched * (sell_value / sold - buy_value / bought))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "itemId": self.item_id,
            "itemName": self.item_name,
            "totalGELimit": self.total_ge_limit,
            "flippedBy": self.flipped_by,
            "validFlippingPanelItem": self.valid_flipping_panel_item,
            "favorite": self.favorite,
            "favoriteCode": self.favorite_code,
            "history": {
                "compressedOfferEvents": [o.to_dict() for o in self.history],
                "nextGeLimitRefresh": instant_to_json(self.ge_limit_reset_time),
                "itemsBoughtThisLimitWindow": self.items_bought_this_limit_window,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlippingItem":
        """Create from dictionary."""
        data = _require_dict(data, "flipping item")
        history = _require_dict(data.get("history") or {}, "item history")
        return cls(
            item_id=int(data["itemId"]),
            item_name=data.get("itemName") or "",
            total_ge_limit=int(data.get("totalGELimit", 0)),
            flipped_by=data.get("flippedBy"),
            valid_flipping_panel_item=bool(data.get("validFlippingPanelItem", True)),
            favorite=bool(data.get("favorite", False)),
            favorite_code=data.get("favoriteCode") or "1",
            ge_limit_reset_time=instant_from_json(history.get("nextGeLimitRefresh")),
            items_bought_this_limit_window=int(
                history.get("itemsBoughtThisLimitWindow", 0)
            ),
            history=[
                OfferEvent.from_dict(o)
                for o in history.get("compressedOfferEvents") or []
            ],
        )


@dataclass
class Recipe:
    """
    A crafting recipe: item ids consumed and produced, with quantities.

    Opaque to the store, which keeps it as a serialized blob.
    """

    name: str
    inputs: Dict[int, int] = field(default_factory=dict)
    outputs: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "inputs": {str(k): v for k, v in self.inputs.items()},
            "outputs": {str(k): v for k, v in self.outputs.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recipe":
        data = _require_dict(data, "recipe")
        return cls(
            name=str(data["name"]),
            inputs={int(k): int(v) for k, v in (data.get("inputs") or {}).items()},
            outputs={int(k): int(v) for k, v in (data.get("outputs") or {}).items()},
        )


@dataclass
class PartialOffer:
    """The part of an offer's quantity that one recipe flip consumed."""

    offer: OfferEvent
    amount_consumed: int

    def to_dict(self) -> Dict[str, Any]:
        return {"offer": self.offer.to_dict(), "amountConsumed": self.amount_consumed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PartialOffer":
        data = _require_dict(data, "partial offer")
        return cls(
            offer=OfferEvent.from_dict(data["offer"]),
            amount_consumed=int(data.get("amountConsumed", 0)),
        )


# item id -> offer uuid -> partial offer
PartialOfferMap = Dict[int, Dict[str, PartialOffer]]


def _partial_map_to_dict(offers: PartialOfferMap) -> Dict[str, Any]:
    return {
        str(item_id): {uuid: p.to_dict() for uuid, p in by_uuid.items()}
        for item_id, by_uuid in offers.items()
    }


def _partial_map_from_dict(data: Any) -> PartialOfferMap:
    result: PartialOfferMap = {}
    for item_id, by_uuid in _require_dict(data or {}, "partial offer map").items():
        result[int(item_id)] = {
            uuid: PartialOffer.from_dict(p)
            for uuid, p in _require_dict(by_uuid, "partial offers").items()
        }
    return result


@dataclass
class RecipeFlip:
    """One execution of a recipe: the offers it consumed and produced."""

    time_of_creation: datetime
    coin_cost: int = 0
    inputs: PartialOfferMap = field(default_factory=dict)
    outputs: PartialOfferMap = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeOfCreation": instant_to_json(self.time_of_creation),
            "coinCost": self.coin_cost,
            "inputs": _partial_map_to_dict(self.inputs),
            "outputs": _partial_map_to_dict(self.outputs),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecipeFlip":
        data = _require_dict(data, "recipe flip")
        created = instant_from_json(data["timeOfCreation"])
        if created is None:
            raise ValueError("recipe flip has no time of creation")
        return cls(
            time_of_creation=created,
            coin_cost=int(data.get("coinCost", 0)),
            inputs=_partial_map_from_dict(data.get("inputs")),
            outputs=_partial_map_from_dict(data.get("outputs")),
        )


@dataclass
class RecipeFlipGroup:
    """All flips an account has made with one recipe."""

    recipe: Recipe
    recipe_flips: List[RecipeFlip] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipe": self.recipe.to_dict(),
            "recipeFlips": [f.to_dict() for f in self.recipe_flips],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecipeFlipGroup":
        data = _require_dict(data, "recipe flip group")
        return cls(
            recipe=Recipe.from_dict(data["recipe"]),
            recipe_flips=[RecipeFlip.from_dict(f) for f in data.get("recipeFlips") or []],
        )


@dataclass
class AccountData:
    """Everything persisted for one account (display name)."""

    session_start_time: Optional[datetime] = None
    accumulated_session_time_millis: int = 0
    last_session_time_update: Optional[datetime] = None
    last_stored_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None
    trades: List[FlippingItem] = field(default_factory=list)
    last_offers: Dict[int, OfferEvent] = field(default_factory=dict)
    recipe_flip_groups: List[RecipeFlipGroup] = field(default_factory=list)

    def duplicate_item_ids(self) -> List[int]:
        """Item ids that appear on more than one entry of trades."""
        seen = set()
        duplicates = []
        for item in self.trades:
            if item.item_id in seen and item.item_id not in duplicates:
                duplicates.append(item.item_id)
            seen.add(item.item_id)
        return duplicates

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionStartTime": instant_to_json(self.session_start_time),
            "accumulatedSessionTimeMillis": self.accumulated_session_time_millis,
            "lastSessionTimeUpdate": instant_to_json(self.last_session_time_update),
            "lastStoredAt": instant_to_json(self.last_stored_at),
            "lastModifiedAt": instant_to_json(self.last_modified_at),
            "trades": [t.to_dict() for t in self.trades],
            "lastOffers": {str(slot): o.to_dict() for slot, o in self.last_offers.items()},
            "recipeFlipGroups": [g.to_dict() for g in self.recipe_flip_groups],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountData":
        data = _require_dict(data, "account data")
        last_offers = _require_dict(data.get("lastOffers") or {}, "last offers")
        account = cls(
            session_start_time=instant_from_json(data.get("sessionStartTime")),
            accumulated_session_time_millis=int(
                data.get("accumulatedSessionTimeMillis", 0)
            ),
            last_session_time_update=instant_from_json(data.get("lastSessionTimeUpdate")),
            last_stored_at=instant_from_json(data.get("lastStoredAt")),
            last_modified_at=instant_from_json(data.get("lastModifiedAt")),
            trades=[FlippingItem.from_dict(t) for t in data.get("trades") or []],
            last_offers={
                _slot_key(slot): OfferEvent.from_dict(o) for slot, o in last_offers.items()
            },
            recipe_flip_groups=[
                RecipeFlipGroup.from_dict(g) for g in data.get("recipeFlipGroups") or []
            ],
        )
        duplicates = account.duplicate_item_ids()
        if duplicates:
            raise ValueError(f"item ids listed more than once in trades: {duplicates}")
        return account


@dataclass
class AccountWideData:
    """
    Preferences shared by every account on the installation.

    options and sections are UI structures the store never interprets.
    """

    options: List[Dict[str, Any]] = field(default_factory=list)
    sections: List[Dict[str, Any]] = field(default_factory=list)
    local_recipes: List[Recipe] = field(default_factory=list)
    should_make_new_additions: bool = True
    enhanced_slots: bool = True
    jwt: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "options": list(self.options),
            "sections": list(self.sections),
            "localRecipes": [r.to_dict() for r in self.local_recipes],
            "shouldMakeNewAdditions": self.should_make_new_additions,
            "enhancedSlots": self.enhanced_slots,
            "jwt": self.jwt,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountWideData":
        data = _require_dict(data, "account wide data")
        return cls(
            options=list(data.get("options") or []),
            sections=list(data.get("sections") or []),
            local_recipes=[Recipe.from_dict(r) for r in data.get("localRecipes") or []],
            should_make_new_additions=bool(data.get("shouldMakeNewAdditions", True)),
            enhanced_slots=bool(data.get("enhancedSlots", True)),
            jwt=data.get("jwt"),
        )
