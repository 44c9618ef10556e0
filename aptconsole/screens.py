# Declarative definitions of the management screens and the role-filtered navigation.
# A screen names its resource, who may open it, and how its list is searched, filtered and sorted.
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .images import image_fields
from .views import ALL, EnumFilter, RangeFilter, SortKey, TextFilter, ViewState

# Agents earn a flat share of each payment
AGENT_COMMISSION_RATE = 0.10


def round2(value: float) -> float:
    return round(float(value), 2)


def agent_commission(amount: Any) -> float:
    try:
        return round2(float(amount or 0) * AGENT_COMMISSION_RATE)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class Facet:
    field: str
    choices: Tuple[str, ...]
    extract: Optional[Callable[[Any], Any]] = None


@dataclass(frozen=True)
class Range:
    field: str
    integer: bool = False


@dataclass
class RowContext:
    api_base_url: str
    placeholder_image_url: str


@dataclass(frozen=True)
class Screen:
    name: str
    title: str
    resource: str
    roles: Tuple[str, ...]
    search_fields: Tuple[str, ...]
    facets: Mapping[str, Facet] = field(default_factory=dict)
    ranges: Mapping[str, Range] = field(default_factory=dict)
    sorts: Mapping[str, SortKey] = field(default_factory=dict)
    default_sort: Optional[str] = None
    decorate: Optional[Callable[[Dict[str, Any], RowContext], Dict[str, Any]]] = None
    # Screens that only browse; they accept no mutations
    read_only: bool = False

    def allows(self, role: Optional[str]) -> bool:
        return role in self.roles

    def view_state(self, params: Mapping[str, Any]) -> ViewState:
        """Build the view-state from query parameters (q, facet names, <range>_min/_max, sort)."""
        filters: List[Any] = []
        for name, facet in self.facets.items():
            value = params.get(name)
            if value not in (None, "", ALL):
                filters.append(EnumFilter(facet.field, str(value), facet.extract))
        for name, rng in self.ranges.items():
            low, high = params.get(f"{name}_min"), params.get(f"{name}_max")
            if low not in (None, "") or high not in (None, ""):
                filters.append(RangeFilter(rng.field, low, high, integer=rng.integer))
        sort_name = params.get("sort") or self.default_sort
        return ViewState(
            search=TextFilter(str(params.get("q") or ""), self.search_fields),
            filters=filters,
            sort=self.sorts.get(sort_name) if sort_name else None,
        )

    def rows(self, items: Sequence[Dict[str, Any]], ctx: RowContext) -> List[Dict[str, Any]]:
        if self.decorate is None:
            return list(items)
        return [self.decorate(item, ctx) for item in items]


def _with_images(item: Dict[str, Any], ctx: RowContext) -> Dict[str, Any]:
    return {**item, **image_fields(item, ctx.api_base_url, ctx.placeholder_image_url)}


def _inventory_row(item: Dict[str, Any], ctx: RowContext) -> Dict[str, Any]:
    # Inventory photo first, then the apartment's own
    source = item if item.get("photoUrl") else (item.get("apartment") or {})
    return {**item, **image_fields(source, ctx.api_base_url, ctx.placeholder_image_url)}


def _payment_row(item: Dict[str, Any], ctx: RowContext) -> Dict[str, Any]:
    return {**item, "agentCommission": agent_commission(item.get("amount"))}


def _availability(item: Any) -> str:
    return "AVAILABLE" if item.get("available") else "UNAVAILABLE"


_APARTMENT_SORTS = {
    "price": SortKey("price"),
    "size": SortKey("size", descending=True),
    "location": SortKey("location", numeric=False),
}

_APARTMENT_RANGES = {
    "price": Range("price"),
    "size": Range("size", integer=True),
}

SCREENS: Dict[str, Screen] = {
    s.name: s
    for s in (
        Screen(
            name="users",
            title="User Management",
            resource="users",
            roles=("ADMIN",),
            search_fields=("username", "email"),
            facets={"role": Facet("role", ("ADMIN", "SELLER", "AGENT", "USER"))},
            sorts={
                "username": SortKey("username", numeric=False),
                "email": SortKey("email", numeric=False),
            },
        ),
        Screen(
            name="apartments",
            title="Apartment Management",
            resource="apartments",
            roles=("ADMIN", "SELLER"),
            search_fields=("location", "features"),
            facets={"status": Facet("available", ("AVAILABLE", "UNAVAILABLE"), _availability)},
            ranges=_APARTMENT_RANGES,
            sorts=_APARTMENT_SORTS,
            decorate=_with_images,
        ),
        Screen(
            name="apartment-listing",
            title="Apartment Listing",
            resource="apartments",
            roles=("AGENT", "USER"),
            search_fields=("location", "features"),
            ranges=_APARTMENT_RANGES,
            sorts=_APARTMENT_SORTS,
            default_sort="price",
            decorate=_with_images,
            read_only=True,
        ),
        Screen(
            name="inventory",
            title="Inventory Management",
            resource="inventories",
            roles=("ADMIN", "SELLER"),
            search_fields=("apartment.location", "status"),
            facets={"status": Facet("status", ("AVAILABLE", "SOLD", "RESERVED"))},
            ranges={"stock": Range("stock", integer=True)},
            sorts={"stock": SortKey("stock")},
            decorate=_inventory_row,
        ),
        Screen(
            name="bookings",
            title="Booking Management",
            resource="bookings",
            roles=("ADMIN", "USER"),
            search_fields=("user.username", "apartment.location"),
            facets={"status": Facet("status", ("PENDING", "CONFIRMED", "CANCELLED", "COMPLETED"))},
            # ISO instants sort correctly as text
            sorts={"bookingDate": SortKey("bookingDate", descending=True, numeric=False)},
        ),
        Screen(
            name="feedbacks",
            title="Feedback Management",
            resource="feedbacks",
            roles=("ADMIN", "USER"),
            search_fields=("user.username", "apartment.location", "comment"),
            facets={"rating": Facet("rating", ("1", "2", "3", "4", "5"))},
            sorts={"rating": SortKey("rating", descending=True)},
        ),
        Screen(
            name="payments",
            title="Payment Management",
            resource="payments",
            roles=("ADMIN", "USER"),
            search_fields=("booking.user.username", "booking.apartment.location"),
            facets={"status": Facet("status", ("PENDING", "COMPLETED", "FAILED", "REFUNDED"))},
            ranges={"amount": Range("amount")},
            sorts={
                "amount": SortKey("amount", descending=True),
                "paymentDate": SortKey("paymentDate", descending=True, numeric=False),
            },
            decorate=_payment_row,
        ),
        Screen(
            name="installment-plans",
            title="Installment Plan Management",
            resource="installment-plans",
            roles=("ADMIN", "USER"),
            search_fields=("payment.booking.user.username", "payment.booking.apartment.location"),
            ranges={"monthlyAmount": Range("monthlyAmount")},
            sorts={
                "installments": SortKey("installments"),
                "monthlyAmount": SortKey("monthlyAmount"),
            },
        ),
    )
}


# Sidebar entries; Dashboard and Profile are open to every role
_NAVIGATION: Tuple[Tuple[str, str, Tuple[str, ...]], ...] = (
    ("Dashboard", "/dashboard", ("ADMIN", "SELLER", "AGENT", "USER")),
    ("User Management", "/users", SCREENS["users"].roles),
    ("Apartments", "/apartments", SCREENS["apartments"].roles),
    ("Inventory", "/inventory", SCREENS["inventory"].roles),
    ("Bookings", "/bookings", SCREENS["bookings"].roles),
    ("Feedbacks", "/feedbacks", SCREENS["feedbacks"].roles),
    ("Payments", "/payments", SCREENS["payments"].roles),
    ("Installment Plans", "/installment-plans", SCREENS["installment-plans"].roles),
    ("Apartment Listing", "/apartment-listing", SCREENS["apartment-listing"].roles),
    ("Profile", "/profile", ("ADMIN", "SELLER", "AGENT", "USER")),
)

_QUICK_ACTIONS: Tuple[Tuple[str, str, str, Tuple[str, ...]], ...] = (
    ("Add Apartment", "Create a new apartment listing", "/apartments", ("ADMIN", "SELLER")),
    ("View Bookings", "Manage apartment bookings", "/bookings", ("ADMIN", "USER")),
    ("Payments", "Add and manage payments", "/payments", ("ADMIN", "USER")),
    ("Installment Plans", "Create and manage plans", "/installment-plans", ("ADMIN", "USER")),
    ("Feedbacks", "Add reviews and manage feedback", "/feedbacks", ("ADMIN", "USER")),
    ("Browse Apartments", "Find available apartments", "/apartment-listing", ("AGENT", "USER")),
    ("Manage Inventory", "Update inventory status", "/inventory", ("ADMIN", "SELLER")),
)


def navigation_for(role: Optional[str]) -> List[Dict[str, str]]:
    return [{"name": name, "href": href} for name, href, roles in _NAVIGATION if role in roles]


def quick_actions_for(role: Optional[str]) -> List[Dict[str, str]]:
    return [
        {"name": name, "description": description, "href": href}
        for name, description, href, roles in _QUICK_ACTIONS
        if role in roles
    ]
