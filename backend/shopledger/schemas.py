# Overview: Request payload parsing into typed inputs for the service layer.

"""
Input schemas for mutating operations.

WHY: Routes receive loosely typed JSON; services should only ever see
validated values (money already in cents, enums from closed sets, datetimes
normalized to UTC). Every from_payload() raises ValidationError before any
database work starts.

DESIGN: Update inputs use the UNSET sentinel so "field omitted" (keep current
value) stays distinct from "field sent as null" (clear it).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from .models.inventory import ITEM_CONDITIONS, STATUS_IN_REPAIR, STATUS_IN_STOCK, STATUS_READY_FOR_SALE, STATUS_RETURNED
from .models.payments import PAYMENT_DIRECTIONS
from .models.repairs import REPAIR_STATUSES
from .money import parse_money, parse_optional_money
from .services.ledger_service import PAYMENT_METHODS, PAYMENT_TYPES
from .validation import (
    ValidationError,
    coerce_int,
    optional_choice,
    optional_datetime,
    optional_int,
    optional_str,
    require_choice,
    require_dict,
    require_list,
    require_str,
)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

INITIAL_ITEM_STATUSES = [STATUS_IN_STOCK, STATUS_IN_REPAIR]
MANUAL_ITEM_STATUSES = [STATUS_IN_STOCK, STATUS_READY_FOR_SALE, STATUS_RETURNED]


def _payload(value: Any) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError("Invalid JSON payload")
    return value


def _maybe(payload: dict, key: str, parse: Callable[[Any, str], Any]) -> Any:
    """Parse payload[key] when present, else UNSET."""
    if key not in payload:
        return UNSET
    return parse(payload[key], key)


def _nullable(parse: Callable[[Any, str], Any]) -> Callable[[Any, str], Any]:
    def _inner(value: Any, name: str) -> Any:
        if value is None:
            return None
        return parse(value, name)
    return _inner


def _str(max_length: int | None = None) -> Callable[[Any, str], Any]:
    return lambda value, name: optional_str(value, name, max_length)


def _required_str(max_length: int | None = None) -> Callable[[Any, str], Any]:
    return lambda value, name: require_str(value, name, max_length)


def _choice(choices) -> Callable[[Any, str], Any]:
    return lambda value, name: require_choice(value, name, choices)


# =============================================================================
# CUSTOMER
# =============================================================================

@dataclass
class CustomerInput:
    phone_number: str | None
    full_name: str | None = None
    address: str | None = None
    passport_id: str | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, value: Any, name: str = "customer") -> "CustomerInput":
        data = require_dict(value, name)
        return cls(
            phone_number=optional_str(data.get("phone_number"), f"{name}.phone_number", 30),
            full_name=optional_str(data.get("full_name"), f"{name}.full_name", 120),
            address=optional_str(data.get("address"), f"{name}.address", 255),
            passport_id=optional_str(data.get("passport_id"), f"{name}.passport_id", 50),
            notes=optional_str(data.get("notes"), f"{name}.notes"),
        )


def _customer_fields(data: dict) -> tuple[Any, CustomerInput | None]:
    customer_id = optional_int(data.get("customer_id"), "customer_id")
    customer = None
    if data.get("customer") is not None:
        customer = CustomerInput.from_payload(data["customer"])
    return customer_id, customer


# =============================================================================
# INVENTORY
# =============================================================================

@dataclass
class CreateItemInput:
    imei: str
    brand: str
    model: str
    condition: str
    serial_number: str | None = None
    storage: str | None = None
    color: str | None = None
    known_issues: str | None = None
    expected_sale_price_cents: int | None = None
    status: str = STATUS_IN_STOCK

    @classmethod
    def from_payload(cls, payload: Any) -> "CreateItemInput":
        data = _payload(payload)
        return cls(
            imei=require_str(data.get("imei"), "imei", 40),
            brand=require_str(data.get("brand"), "brand", 80),
            model=require_str(data.get("model"), "model", 80),
            condition=require_choice(data.get("condition"), "condition", ITEM_CONDITIONS),
            serial_number=optional_str(data.get("serial_number"), "serial_number", 50),
            storage=optional_str(data.get("storage"), "storage", 40),
            color=optional_str(data.get("color"), "color", 40),
            known_issues=optional_str(data.get("known_issues"), "known_issues"),
            expected_sale_price_cents=parse_optional_money(data.get("expected_sale_price"), "expected_sale_price"),
            status=optional_choice(data.get("status"), "status", [STATUS_IN_STOCK, STATUS_READY_FOR_SALE])
            or STATUS_IN_STOCK,
        )


@dataclass
class UpdateItemInput:
    imei: Any = UNSET
    serial_number: Any = UNSET
    brand: Any = UNSET
    model: Any = UNSET
    storage: Any = UNSET
    color: Any = UNSET
    condition: Any = UNSET
    known_issues: Any = UNSET
    expected_sale_price_cents: Any = UNSET
    status: Any = UNSET

    @classmethod
    def from_payload(cls, payload: Any) -> "UpdateItemInput":
        data = _payload(payload)
        return cls(
            imei=_maybe(data, "imei", _required_str(40)),
            serial_number=_maybe(data, "serial_number", _str(50)),
            brand=_maybe(data, "brand", _required_str(80)),
            model=_maybe(data, "model", _required_str(80)),
            storage=_maybe(data, "storage", _str(40)),
            color=_maybe(data, "color", _str(40)),
            condition=_maybe(data, "condition", _choice(ITEM_CONDITIONS)),
            known_issues=_maybe(data, "known_issues", _str()),
            expected_sale_price_cents=_maybe(data, "expected_sale_price", _nullable(parse_money)),
            status=_maybe(data, "status", _choice(MANUAL_ITEM_STATUSES)),
        )


# =============================================================================
# PURCHASES
# =============================================================================

@dataclass
class PurchaseLineInput:
    imei: str
    brand: str
    model: str
    condition: str
    purchase_price_cents: int
    item_id: int | None = None
    serial_number: str | None = None
    storage: str | None = None
    color: str | None = None
    known_issues: str | None = None
    expected_sale_price_cents: int | None = None
    initial_status: str | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, value: Any, name: str) -> "PurchaseLineInput":
        data = require_dict(value, name)
        return cls(
            item_id=optional_int(data.get("item_id"), f"{name}.item_id"),
            imei=require_str(data.get("imei"), f"{name}.imei", 40),
            brand=require_str(data.get("brand"), f"{name}.brand", 80),
            model=require_str(data.get("model"), f"{name}.model", 80),
            condition=require_choice(data.get("condition"), f"{name}.condition", ITEM_CONDITIONS),
            purchase_price_cents=parse_money(data.get("purchase_price"), f"{name}.purchase_price"),
            serial_number=optional_str(data.get("serial_number"), f"{name}.serial_number", 50),
            storage=optional_str(data.get("storage"), f"{name}.storage", 40),
            color=optional_str(data.get("color"), f"{name}.color", 40),
            known_issues=optional_str(data.get("known_issues"), f"{name}.known_issues"),
            expected_sale_price_cents=parse_optional_money(
                data.get("expected_sale_price"), f"{name}.expected_sale_price"
            ),
            initial_status=optional_choice(data.get("initial_status"), f"{name}.initial_status", INITIAL_ITEM_STATUSES),
            notes=optional_str(data.get("notes"), f"{name}.notes"),
        )


def _purchase_lines(value: Any) -> list[PurchaseLineInput]:
    entries = require_list(value, "items")
    return [PurchaseLineInput.from_payload(entry, f"items[{i}]") for i, entry in enumerate(entries)]


@dataclass
class CreatePurchaseInput:
    payment_method: str
    payment_type: str
    items: list[PurchaseLineInput]
    purchased_at: datetime | None = None
    paid_now_cents: int | None = None
    customer_id: int | None = None
    customer: CustomerInput | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CreatePurchaseInput":
        data = _payload(payload)
        customer_id, customer = _customer_fields(data)
        return cls(
            purchased_at=optional_datetime(data.get("purchased_at"), "purchased_at"),
            payment_method=require_choice(data.get("payment_method"), "payment_method", PAYMENT_METHODS),
            payment_type=require_choice(data.get("payment_type"), "payment_type", PAYMENT_TYPES),
            paid_now_cents=parse_optional_money(data.get("paid_now"), "paid_now"),
            customer_id=customer_id,
            customer=customer,
            notes=optional_str(data.get("notes"), "notes"),
            items=_purchase_lines(data.get("items")),
        )


@dataclass
class UpdatePurchaseInput:
    purchased_at: Any = UNSET
    payment_method: Any = UNSET
    payment_type: Any = UNSET
    paid_now_cents: Any = UNSET
    customer_id: Any = UNSET
    customer: CustomerInput | None = None
    notes: Any = UNSET
    items: list[PurchaseLineInput] | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "UpdatePurchaseInput":
        data = _payload(payload)
        items = None
        if data.get("items") is not None:
            items = _purchase_lines(data["items"])
        return cls(
            purchased_at=_maybe(data, "purchased_at", optional_datetime),
            payment_method=_maybe(data, "payment_method", _choice(PAYMENT_METHODS)),
            payment_type=_maybe(data, "payment_type", _choice(PAYMENT_TYPES)),
            paid_now_cents=_maybe(data, "paid_now", parse_money),
            customer_id=_maybe(data, "customer_id", _nullable(coerce_int)),
            customer=CustomerInput.from_payload(data["customer"]) if data.get("customer") is not None else None,
            notes=_maybe(data, "notes", _str()),
            items=items,
        )


# =============================================================================
# SALES
# =============================================================================

@dataclass
class SaleLineInput:
    sale_price_cents: int
    item_id: int | None = None
    imei: str | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, value: Any, name: str) -> "SaleLineInput":
        data = require_dict(value, name)
        return cls(
            item_id=optional_int(data.get("item_id"), f"{name}.item_id"),
            imei=optional_str(data.get("imei"), f"{name}.imei", 40),
            sale_price_cents=parse_money(data.get("sale_price"), f"{name}.sale_price"),
            notes=optional_str(data.get("notes"), f"{name}.notes"),
        )


def _sale_lines(value: Any) -> list[SaleLineInput]:
    entries = require_list(value, "items")
    return [SaleLineInput.from_payload(entry, f"items[{i}]") for i, entry in enumerate(entries)]


@dataclass
class CreateSaleInput:
    payment_method: str
    payment_type: str
    items: list[SaleLineInput]
    sold_at: datetime | None = None
    paid_now_cents: int | None = None
    customer_id: int | None = None
    customer: CustomerInput | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CreateSaleInput":
        data = _payload(payload)
        customer_id, customer = _customer_fields(data)
        return cls(
            sold_at=optional_datetime(data.get("sold_at"), "sold_at"),
            payment_method=require_choice(data.get("payment_method"), "payment_method", PAYMENT_METHODS),
            payment_type=require_choice(data.get("payment_type"), "payment_type", PAYMENT_TYPES),
            paid_now_cents=parse_optional_money(data.get("paid_now"), "paid_now"),
            customer_id=customer_id,
            customer=customer,
            notes=optional_str(data.get("notes"), "notes"),
            items=_sale_lines(data.get("items")),
        )


@dataclass
class UpdateSaleInput:
    sold_at: Any = UNSET
    payment_method: Any = UNSET
    payment_type: Any = UNSET
    paid_now_cents: Any = UNSET
    customer_id: Any = UNSET
    customer: CustomerInput | None = None
    notes: Any = UNSET
    items: list[SaleLineInput] | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "UpdateSaleInput":
        data = _payload(payload)
        items = None
        if data.get("items") is not None:
            items = _sale_lines(data["items"])
        return cls(
            sold_at=_maybe(data, "sold_at", optional_datetime),
            payment_method=_maybe(data, "payment_method", _choice(PAYMENT_METHODS)),
            payment_type=_maybe(data, "payment_type", _choice(PAYMENT_TYPES)),
            paid_now_cents=_maybe(data, "paid_now", parse_money),
            customer_id=_maybe(data, "customer_id", _nullable(coerce_int)),
            customer=CustomerInput.from_payload(data["customer"]) if data.get("customer") is not None else None,
            notes=_maybe(data, "notes", _str()),
            items=items,
        )


# =============================================================================
# PAYMENTS
# =============================================================================

@dataclass
class PaymentInput:
    """Partial payment against one purchase or sale."""
    amount_cents: int
    notes: str | None = None
    paid_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "PaymentInput":
        data = _payload(payload)
        return cls(
            amount_cents=parse_money(data.get("amount"), "amount"),
            notes=optional_str(data.get("notes"), "notes"),
            paid_at=optional_datetime(data.get("paid_at"), "paid_at"),
        )


@dataclass
class CustomerPaymentInput:
    """Customer-level settlement spread over open documents."""
    direction: str
    method: str
    amount_cents: int
    notes: str | None = None
    paid_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CustomerPaymentInput":
        data = _payload(payload)
        return cls(
            direction=require_choice(data.get("direction"), "direction", PAYMENT_DIRECTIONS),
            method=require_choice(data.get("method"), "method", PAYMENT_METHODS),
            amount_cents=parse_money(data.get("amount"), "amount"),
            notes=optional_str(data.get("notes"), "notes"),
            paid_at=optional_datetime(data.get("paid_at"), "paid_at"),
        )


# =============================================================================
# REPAIRS
# =============================================================================

@dataclass
class CreateRepairInput:
    description: str
    item_id: int | None = None
    imei: str | None = None
    repaired_at: datetime | None = None
    cost_total_cents: int = 0
    parts_cost_cents: int | None = None
    labor_cost_cents: int | None = None
    technician_id: int | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CreateRepairInput":
        data = _payload(payload)
        return cls(
            item_id=optional_int(data.get("item_id"), "item_id"),
            imei=optional_str(data.get("imei"), "imei", 40),
            description=require_str(data.get("description"), "description"),
            repaired_at=optional_datetime(data.get("repaired_at"), "repaired_at"),
            cost_total_cents=parse_optional_money(data.get("cost_total"), "cost_total") or 0,
            parts_cost_cents=parse_optional_money(data.get("parts_cost"), "parts_cost"),
            labor_cost_cents=parse_optional_money(data.get("labor_cost"), "labor_cost"),
            technician_id=optional_int(data.get("technician_id"), "technician_id"),
            notes=optional_str(data.get("notes"), "notes"),
        )


@dataclass
class RepairEntryInput:
    description: str
    cost_total_cents: int
    entry_at: datetime | None = None
    parts_cost_cents: int | None = None
    labor_cost_cents: int | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "RepairEntryInput":
        data = _payload(payload)
        return cls(
            description=require_str(data.get("description"), "description"),
            cost_total_cents=parse_money(data.get("cost_total"), "cost_total"),
            entry_at=optional_datetime(data.get("entry_at"), "entry_at"),
            parts_cost_cents=parse_optional_money(data.get("parts_cost"), "parts_cost"),
            labor_cost_cents=parse_optional_money(data.get("labor_cost"), "labor_cost"),
            notes=optional_str(data.get("notes"), "notes"),
        )


@dataclass
class UpdateRepairInput:
    description: Any = UNSET
    status: Any = UNSET
    repaired_at: Any = UNSET
    notes: Any = UNSET
    cost_total_cents: Any = UNSET
    parts_cost_cents: Any = UNSET
    labor_cost_cents: Any = UNSET
    technician_id: Any = UNSET

    @classmethod
    def from_payload(cls, payload: Any) -> "UpdateRepairInput":
        data = _payload(payload)
        return cls(
            description=_maybe(data, "description", _required_str()),
            status=_maybe(data, "status", _choice(REPAIR_STATUSES)),
            repaired_at=_maybe(data, "repaired_at", optional_datetime),
            notes=_maybe(data, "notes", _str()),
            cost_total_cents=_maybe(data, "cost_total", parse_money),
            parts_cost_cents=_maybe(data, "parts_cost", _nullable(parse_money)),
            labor_cost_cents=_maybe(data, "labor_cost", _nullable(parse_money)),
            technician_id=_maybe(data, "technician_id", _nullable(coerce_int)),
        )

    @property
    def touches_costs(self) -> bool:
        return any(
            value is not UNSET
            for value in (self.cost_total_cents, self.parts_cost_cents, self.labor_cost_cents)
        )


@dataclass
class UpdateRepairEntryInput:
    description: Any = UNSET
    entry_at: Any = UNSET
    cost_total_cents: Any = UNSET
    parts_cost_cents: Any = UNSET
    labor_cost_cents: Any = UNSET
    notes: Any = UNSET

    @classmethod
    def from_payload(cls, payload: Any) -> "UpdateRepairEntryInput":
        data = _payload(payload)
        return cls(
            description=_maybe(data, "description", _required_str()),
            entry_at=_maybe(data, "entry_at", optional_datetime),
            cost_total_cents=_maybe(data, "cost_total", parse_money),
            parts_cost_cents=_maybe(data, "parts_cost", _nullable(parse_money)),
            labor_cost_cents=_maybe(data, "labor_cost", _nullable(parse_money)),
            notes=_maybe(data, "notes", _str()),
        )


# =============================================================================
# LIST FILTERS
# =============================================================================

@dataclass
class ListQuery:
    page: int | None = None
    per_page: int | None = None
    q: str | None = None
    filters: dict = field(default_factory=dict)

    @classmethod
    def from_args(cls, args, **filters) -> "ListQuery":
        """Build from request.args; filters maps arg name -> parser."""
        parsed = {}
        for key, parse in filters.items():
            raw = args.get(key)
            if raw is not None and raw != "":
                parsed[key] = parse(raw, key)
        return cls(
            page=optional_int(args.get("page"), "page"),
            per_page=optional_int(args.get("per_page"), "per_page"),
            q=optional_str(args.get("q"), "q"),
            filters=parsed,
        )
