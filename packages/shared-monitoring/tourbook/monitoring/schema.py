"""
Conversion event schema - the tagged union of trackable conversion events.

The booking flow produces four advertising conversions:
- view_item: a tour detail page was viewed
- begin_checkout: the booking form was started
- add_payment_info: payment details were entered
- purchase: the booking was paid for

Each kind is its own frozen dataclass so that pre-validation is an
exhaustive dispatch over the variants instead of ad hoc field checks.
Fields the booking flow sends that the schema does not know about are
kept in an explicit ``extra`` map and merged back into the payload sent
to the tag manager.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar

from tourbook.monitoring.exceptions import ConversionDataError


class ConversionEventType(str, Enum):
    """Conversion kinds recognized by the monitor."""

    VIEW_ITEM = "view_item"
    BEGIN_CHECKOUT = "begin_checkout"
    ADD_PAYMENT_INFO = "add_payment_info"
    PURCHASE = "purchase"


class ConversionStatus(str, Enum):
    """Lifecycle status of a conversion attempt."""

    PENDING = "pending"
    FIRED = "fired"
    VALIDATED = "validated"
    VALIDATION_FAILED = "validation_failed"
    FIRING_FAILED = "firing_failed"
    VALIDATION_TIMEOUT = "validation_timeout"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Return True if no further transition is possible."""
        return self not in (ConversionStatus.PENDING, ConversionStatus.FIRED)


# Allowed status transitions. Terminal states have no outgoing edges.
ALLOWED_TRANSITIONS: dict[ConversionStatus, frozenset[ConversionStatus]] = {
    ConversionStatus.PENDING: frozenset({
        ConversionStatus.FIRED,
        ConversionStatus.VALIDATION_FAILED,
        ConversionStatus.FIRING_FAILED,
        ConversionStatus.ERROR,
    }),
    ConversionStatus.FIRED: frozenset({
        ConversionStatus.VALIDATED,
        ConversionStatus.VALIDATION_FAILED,
        ConversionStatus.VALIDATION_TIMEOUT,
        ConversionStatus.ERROR,
    }),
}


@dataclass(frozen=True)
class Item:
    """A tour line item in a conversion payload."""

    item_id: str
    item_name: str
    price: float = 0.0
    quantity: int = 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to the tag manager item format."""
        return {
            "item_id": self.item_id,
            "item_name": self.item_name,
            "price": self.price,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Item:
        """Create Item from dictionary.

        Accepts both ``item_id``/``item_name`` and the short ``id``/``name`` keys.

        Raises:
            ConversionDataError: If price or quantity are not numeric.
        """
        try:
            price = float(data.get("price", 0))
        except (ValueError, TypeError) as e:
            raise ConversionDataError(f"Invalid item price: {data.get('price')}") from e

        try:
            quantity = int(data.get("quantity", 1))
        except (ValueError, TypeError) as e:
            raise ConversionDataError(f"Invalid item quantity: {data.get('quantity')}") from e

        return cls(
            item_id=str(data.get("item_id", data.get("id", ""))),
            item_name=str(data.get("item_name", data.get("name", ""))),
            price=price,
            quantity=quantity,
        )


@dataclass(frozen=True)
class UserData:
    """Customer contact fields used for enhanced conversions."""

    email: str | None = None
    phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    name: str | None = None

    @property
    def is_empty(self) -> bool:
        """Return True if no contact field is set."""
        return not any(self.to_dict().values())

    def to_dict(self) -> dict[str, str]:
        """Return only the fields that are set."""
        fields = {
            "email": self.email,
            "phone": self.phone,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "name": self.name,
        }
        return {key: value for key, value in fields.items() if value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserData:
        """Create UserData from dictionary (snake_case or camelCase keys)."""
        return cls(
            email=data.get("email"),
            phone=data.get("phone"),
            first_name=data.get("first_name", data.get("firstName")),
            last_name=data.get("last_name", data.get("lastName")),
            name=data.get("name"),
        )


_KNOWN_KEYS = frozenset({
    "event",
    "transaction_id",
    "booking_id",
    "value",
    "currency",
    "items",
    "user_data",
    "source",
    "extra",
})


@dataclass(frozen=True)
class ConversionData:
    """
    Base for all conversion event variants.

    Do not instantiate directly; use one of the variants or
    ``ConversionData.from_dict`` which picks the variant from ``event``.

    Example:
        data = Purchase(
            transaction_id="ch_3Nx...",
            booking_id="BK-1042",
            value=13000,
            items=(Item("night-tour", "Night Food Tour", 13000),),
            user_data=UserData(email="guest@example.com"),
        )
    """

    event: ClassVar[ConversionEventType]

    transaction_id: str | None = None
    booking_id: str | None = None
    value: float | None = None
    currency: str = "JPY"
    items: tuple[Item, ...] = ()
    user_data: UserData | None = None
    source: str | None = None

    # Fields outside the schema, passed through to the tag manager untouched
    extra: dict[str, Any] = field(default_factory=dict)

    def with_source(self, source: str) -> ConversionData:
        """Return a copy tagged with the given source."""
        return replace(self, source=source)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the payload sent to the tag manager."""
        payload: dict[str, Any] = dict(self.extra)
        payload["event"] = self.event.value
        payload["currency"] = self.currency
        if self.transaction_id is not None:
            payload["transaction_id"] = self.transaction_id
        if self.booking_id is not None:
            payload["booking_id"] = self.booking_id
        if self.value is not None:
            payload["value"] = self.value
        if self.items:
            payload["items"] = [item.to_dict() for item in self.items]
        if self.user_data is not None:
            payload["user_data"] = self.user_data.to_dict()
        if self.source is not None:
            payload["source"] = self.source
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ConversionData:
        """Create the matching variant from a dictionary.

        Args:
            data: Raw conversion data, e.g. from the booking flow.

        Returns:
            A ViewItem, BeginCheckout, AddPaymentInfo or Purchase instance.

        Raises:
            ConversionDataError: If the event is missing or unknown, or if
                value/items cannot be converted.
        """
        raw_event = data.get("event")
        if not raw_event:
            raise ConversionDataError("Event type is required", f"Invalid event type: {raw_event}")

        try:
            event_type = ConversionEventType(raw_event)
        except ValueError as e:
            raise ConversionDataError(f"Invalid event type: {raw_event}") from e

        value = data.get("value")
        if value is not None:
            try:
                value = float(value)
            except (ValueError, TypeError) as e:
                raise ConversionDataError(f"Invalid value: {data.get('value')}") from e

        raw_items = data.get("items") or []
        if not isinstance(raw_items, (list, tuple)):
            raise ConversionDataError(f"Invalid items: expected a sequence, got {type(raw_items).__name__}")
        items = []
        for item in raw_items:
            if isinstance(item, Item):
                items.append(item)
            elif isinstance(item, Mapping):
                items.append(Item.from_dict(item))
            else:
                raise ConversionDataError(f"Invalid item: {item!r}")

        raw_user_data = data.get("user_data")
        if raw_user_data is None or isinstance(raw_user_data, UserData):
            user_data = raw_user_data
        elif isinstance(raw_user_data, Mapping):
            user_data = UserData.from_dict(raw_user_data)
        else:
            raise ConversionDataError(f"Invalid user_data: expected a mapping, got {type(raw_user_data).__name__}")

        extra = dict(data.get("extra") or {})
        extra.update({key: raw for key, raw in data.items() if key not in _KNOWN_KEYS})

        variant = EVENT_VARIANTS[event_type]
        return variant(
            transaction_id=data.get("transaction_id"),
            booking_id=data.get("booking_id"),
            value=value,
            currency=data.get("currency") or "JPY",
            items=tuple(items),
            user_data=user_data,
            source=data.get("source"),
            extra=extra,
        )


@dataclass(frozen=True)
class ViewItem(ConversionData):
    """A tour detail page view. Requires at least one item."""

    event: ClassVar[ConversionEventType] = ConversionEventType.VIEW_ITEM


@dataclass(frozen=True)
class BeginCheckout(ConversionData):
    """Start of the booking form. Requires at least one item."""

    event: ClassVar[ConversionEventType] = ConversionEventType.BEGIN_CHECKOUT


@dataclass(frozen=True)
class AddPaymentInfo(ConversionData):
    """Payment details entered."""

    event: ClassVar[ConversionEventType] = ConversionEventType.ADD_PAYMENT_INFO


@dataclass(frozen=True)
class Purchase(ConversionData):
    """Completed booking. Requires a transaction ID and a positive value."""

    event: ClassVar[ConversionEventType] = ConversionEventType.PURCHASE


EVENT_VARIANTS: dict[ConversionEventType, type[ConversionData]] = {
    ConversionEventType.VIEW_ITEM: ViewItem,
    ConversionEventType.BEGIN_CHECKOUT: BeginCheckout,
    ConversionEventType.ADD_PAYMENT_INFO: AddPaymentInfo,
    ConversionEventType.PURCHASE: Purchase,
}


def validate_conversion_data(data: ConversionData) -> list[str]:
    """Check the event-specific required fields.

    Args:
        data: Parsed conversion data.

    Returns:
        List of validation error messages. Empty list if valid.
    """
    errors = []

    if isinstance(data, Purchase):
        if not data.transaction_id:
            errors.append("Transaction ID is required for purchase events")
        if data.value is None or not math.isfinite(data.value) or data.value <= 0:
            errors.append("Valid conversion value is required for purchase events")
    elif isinstance(data, (BeginCheckout, ViewItem)):
        if not data.items:
            errors.append(f"Items array is required for {data.event.value} events")
    elif isinstance(data, AddPaymentInfo):
        pass
    else:
        errors.append(f"Invalid event type: {getattr(data, 'event', None)}")

    return errors
