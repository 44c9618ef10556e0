# Create/update/delete pipeline shared by every management screen.
#
# Order of events for a submission:
#   shape payload locally (validation errors never reach the network)
#   -> await the upstream call
#   -> invalidate the owning resource and the resources that embed it
#   -> close the form
#   -> notify
# On failure the form stays open with the submitted values so the user can correct and retry.
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ValidationError

from . import schemas
from .cache import EntityCache
from .errors import ApiError, FormValidationError, SessionExpired, TransportFailure
from .notifications import Notifier
from .resources import ResourceClient
from .screens import round2

logger = logging.getLogger("aptconsole.mutations")

Action = Literal["create", "update", "delete"]

# Share of a payment paid up front; the rest is spread over the installments
DOWN_PAYMENT_RATIO = 0.40

# Resources whose rows embed a snapshot of the key resource; "dashboard" holds counters over them
DEPENDENTS: Dict[str, Tuple[str, ...]] = {
    "users": ("bookings", "feedbacks", "payments", "installment-plans", "dashboard"),
    "apartments": ("inventories", "bookings", "feedbacks", "payments", "installment-plans", "dashboard"),
    "bookings": ("payments", "installment-plans", "dashboard"),
    "payments": ("installment-plans", "dashboard"),
}

LABELS: Dict[str, str] = {
    "users": "user",
    "apartments": "apartment",
    "inventories": "inventory item",
    "bookings": "booking",
    "feedbacks": "feedback",
    "payments": "payment",
    "installment-plans": "installment plan",
}

# Form field that carries each foreign key ("apartmentId" -> {"apartment": {"id": ...}})
REF_FIELDS: Dict[str, str] = {
    "user": "userId",
    "apartment": "apartmentId",
    "booking": "bookingId",
    "payment": "paymentId",
}

_PAST = {"create": "created", "update": "updated", "delete": "deleted"}
_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def invalidation_targets(resource: str) -> Tuple[str, ...]:
    return (resource,) + DEPENDENTS.get(resource, ())


def success_message(action: Action, resource: str) -> str:
    label = LABELS.get(resource, resource)
    return f"{label[0].upper()}{label[1:]} {_PAST[action]} successfully!"


def failure_message(action: Action, resource: str) -> str:
    return f"Failed to {action} {LABELS.get(resource, resource)}"


def _label(name: str) -> str:
    words = re.sub(r"(?<!^)(?=[A-Z])", " ", name).lower()
    return words[0].upper() + words[1:]


def _blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


# ----------------
# Coercion helpers
# ----------------
def coerce_number(
    values: Dict[str, Any],
    name: str,
    errors: Dict[str, str],
    *,
    integer: bool = False,
    required: bool = True,
) -> Optional[float]:
    raw = values.get(name)
    if _blank(raw):
        if required:
            errors[name] = f"{_label(name)} is required"
        return None
    if isinstance(raw, bool):
        errors[name] = f"{_label(name)} must be a number"
        return None
    try:
        number = float(raw.strip()) if isinstance(raw, str) else float(raw)
    except (TypeError, ValueError):
        errors[name] = f"{_label(name)} must be a number"
        return None
    if math.isnan(number) or math.isinf(number):
        errors[name] = f"{_label(name)} must be a number"
        return None
    if integer:
        if number != int(number):
            errors[name] = f"{_label(name)} must be a whole number"
            return None
        return int(number)
    return number


def coerce_ref(values: Dict[str, Any], ref: str, errors: Dict[str, str]) -> Optional[Dict[str, int]]:
    """Foreign key from either "<ref>Id" or a nested {"id": ...}; always sent as {"id": n}."""
    form_field = REF_FIELDS[ref]
    raw = values.get(form_field)
    if _blank(raw):
        nested = values.get(ref)
        raw = nested.get("id") if isinstance(nested, dict) else nested
    single = {form_field: raw}
    ref_id = coerce_number(single, form_field, errors, integer=True)
    if ref_id is None:
        return None
    return {"id": int(ref_id)}


def coerce_bool(raw: Any, default: bool = True) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def to_iso_instant(raw: Any, tz_name: str = "UTC") -> Optional[str]:
    """
    Serialize a form date/time as an absolute ISO-8601 instant in UTC with milliseconds.

    - "" / None                    -> None
    - "2025-01-10"                 -> midnight UTC that day
    - "2025-01-10T14:30" (naive)   -> interpreted in tz_name
    - offset or "Z" suffix          -> converted to UTC
    Raises ValueError when the text is not a date.
    """
    if isinstance(raw, datetime):
        dt = raw
    elif _blank(raw):
        return None
    else:
        text = str(raw).strip()
        if _DATE_ONLY.match(text):
            dt = datetime.fromisoformat(text).replace(tzinfo=timezone.utc)
        else:
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz_name))
    dt = dt.astimezone(timezone.utc)
    return f"{dt:%Y-%m-%dT%H:%M:%S}.{dt.microsecond // 1000:03d}Z"


def _coerce_instant(values: Dict[str, Any], name: str, errors: Dict[str, str], tz_name: str, *, required: bool) -> Optional[str]:
    raw = values.get(name)
    if _blank(raw):
        if required:
            errors[name] = f"{_label(name)} is required"
        return None
    try:
        return to_iso_instant(raw, tz_name)
    except ValueError:
        errors[name] = f"{_label(name)} is not a valid date"
        return None


def _optional_text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    return str(raw)


# ----------------
# Payload shaping
# ----------------
def _users(values: Dict[str, Any], errors: Dict[str, str], tz_name: str) -> Dict[str, Any]:
    return {
        "username": values.get("username"),
        "email": values.get("email"),
        "password": values.get("password") or None,
        "role": values.get("role") or "USER",
    }


def _apartments(values: Dict[str, Any], errors: Dict[str, str], tz_name: str) -> Dict[str, Any]:
    return {
        "location": values.get("location"),
        "price": coerce_number(values, "price", errors),
        "size": coerce_number(values, "size", errors, integer=True),
        "features": _optional_text(values.get("features")),
        "photoUrl": values.get("photoUrl") or None,
        "available": coerce_bool(values.get("available")),
    }


def _inventories(values: Dict[str, Any], errors: Dict[str, str], tz_name: str) -> Dict[str, Any]:
    return {
        "apartment": coerce_ref(values, "apartment", errors),
        "stock": coerce_number(values, "stock", errors, integer=True),
        "status": values.get("status"),
        "photoUrl": values.get("photoUrl") or None,
    }


def _bookings(values: Dict[str, Any], errors: Dict[str, str], tz_name: str) -> Dict[str, Any]:
    return {
        "user": coerce_ref(values, "user", errors),
        "apartment": coerce_ref(values, "apartment", errors),
        "bookingDate": _coerce_instant(values, "bookingDate", errors, tz_name, required=True),
        "status": values.get("status") or "PENDING",
    }


def _feedbacks(values: Dict[str, Any], errors: Dict[str, str], tz_name: str) -> Dict[str, Any]:
    return {
        "user": coerce_ref(values, "user", errors),
        "apartment": coerce_ref(values, "apartment", errors),
        "rating": coerce_number(values, "rating", errors, integer=True),
        "comment": _optional_text(values.get("comment")),
    }


def _payments(values: Dict[str, Any], errors: Dict[str, str], tz_name: str) -> Dict[str, Any]:
    return {
        "booking": coerce_ref(values, "booking", errors),
        "amount": coerce_number(values, "amount", errors),
        "paymentDate": _coerce_instant(values, "paymentDate", errors, tz_name, required=False),
        "status": values.get("status") or "PENDING",
    }


def _installment_plans(values: Dict[str, Any], errors: Dict[str, str], tz_name: str) -> Dict[str, Any]:
    return {
        "payment": coerce_ref(values, "payment", errors),
        "installments": coerce_number(values, "installments", errors, integer=True),
        "monthlyAmount": coerce_number(values, "monthlyAmount", errors),
        "schedule": _optional_text(values.get("schedule")),
    }


Shaper = Callable[[Dict[str, Any], Dict[str, str], str], Dict[str, Any]]

SHAPERS: Dict[str, Tuple[Shaper, type]] = {
    "users": (_users, schemas.UserWrite),
    "apartments": (_apartments, schemas.ApartmentWrite),
    "inventories": (_inventories, schemas.InventoryWrite),
    "bookings": (_bookings, schemas.BookingWrite),
    "feedbacks": (_feedbacks, schemas.FeedbackWrite),
    "payments": (_payments, schemas.PaymentWrite),
    "installment-plans": (_installment_plans, schemas.InstallmentPlanWrite),
}


def _field_for(loc: Tuple[Any, ...]) -> str:
    head = str(loc[0]) if loc else "__all__"
    return REF_FIELDS.get(head, head)


def shape_payload(resource: str, values: Dict[str, Any], tz_name: str = "UTC") -> Dict[str, Any]:
    """
    Turn raw form input into the wire payload for a resource.

    Raises FormValidationError with one message per offending form field.
    """
    try:
        shaper, dto = SHAPERS[resource]
    except KeyError:
        raise ValueError(f"Unknown resource: {resource}") from None

    errors: Dict[str, str] = {}
    data = shaper(values or {}, errors, tz_name)
    if errors:
        raise FormValidationError(errors)
    try:
        model: BaseModel = dto.model_validate(data)
    except ValidationError as exc:
        for err in exc.errors():
            errors.setdefault(_field_for(tuple(err.get("loc", ()))), err.get("msg", "Invalid value"))
        raise FormValidationError(errors) from exc
    return model.wire()


# ----------------
# Installment suggestion
# ----------------
def _as_number(raw: Any) -> Optional[float]:
    if _blank(raw) or isinstance(raw, bool):
        return None
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def suggest_monthly_amount(amount: Any, installments: Any) -> Optional[float]:
    """
    Monthly amount after the down payment: round2(amount * 0.60 / installments).

    No suggestion without a usable amount or with fewer than one whole installment.
    """
    total = _as_number(amount)
    count = _as_number(installments)
    if total is None or count is None or count < 1 or count != int(count):
        return None
    remaining = max(total - total * DOWN_PAYMENT_RATIO, 0.0)
    return round2(remaining / max(int(count), 1))


def reconcile_monthly_amount(current: Any, last_suggested: Any, suggestion: Optional[float]) -> Tuple[Any, bool]:
    """
    Decide what the monthly amount field should show after the inputs changed.

    The suggestion replaces the field only when the field is empty or still holds the
    previous suggestion. Anything else is a manual edit and is kept.
    Returns (value, overwritten).
    """
    if suggestion is None:
        return current, False
    if _blank(current):
        return suggestion, True
    value = _as_number(current)
    previous = _as_number(last_suggested)
    if value is not None and value == suggestion:
        return suggestion, False
    if value is not None and previous is not None and value == previous:
        return suggestion, True
    return current, False


# ----------------
# Pipeline
# ----------------
@dataclass
class FormState:
    open: bool = False
    editing_id: Optional[int] = None
    pending: bool = False
    values: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def close(self) -> None:
        self.open = False
        self.editing_id = None
        self.pending = False
        self.values = {}
        self.errors = {}

    def as_dict(self) -> Dict[str, Any]:
        return {
            "open": self.open,
            "editing_id": self.editing_id,
            "pending": self.pending,
            "values": dict(self.values),
            "errors": dict(self.errors),
        }


@dataclass
class MutationResult:
    ok: bool
    action: Action
    resource: str
    message: str
    form: FormState
    id: Optional[int] = None
    entity: Optional[Dict[str, Any]] = None
    # HTTP status the console API should answer with when ok is False
    status_code: int = 200

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "action": self.action,
            "resource": self.resource,
            "id": self.id,
            "entity": self.entity,
            "message": self.message,
            "form": self.form.as_dict(),
        }


def _failure_status(exc: Exception) -> int:
    if isinstance(exc, ApiError) and 400 <= exc.status_code < 500:
        return exc.status_code
    return 502


class MutationPipeline:
    """
    Wraps upstream writes with payload shaping, form state, cache invalidation and
    notifications. One FormState is kept per resource (the screen's modal).
    """

    def __init__(
        self,
        client: ResourceClient,
        cache: EntityCache,
        notifier: Notifier,
        *,
        timezone_name: str = "UTC",
    ) -> None:
        self.client = client
        self.cache = cache
        self.notifier = notifier
        self.timezone_name = timezone_name
        self._forms: Dict[str, FormState] = {}

    def form(self, resource: str) -> FormState:
        return self._forms.setdefault(resource, FormState())

    def open_form(self, resource: str, editing_id: Optional[int] = None, values: Optional[Dict[str, Any]] = None) -> FormState:
        state = self.form(resource)
        state.close()
        state.open = True
        state.editing_id = editing_id
        state.values = dict(values or {})
        return state

    def close_form(self, resource: str) -> FormState:
        state = self.form(resource)
        state.close()
        return state

    def _prepare(self, resource: str, values: Dict[str, Any], editing_id: Optional[int]) -> FormState:
        state = self.form(resource)
        state.open = True
        state.editing_id = editing_id
        state.values = dict(values or {})
        state.errors = {}
        return state

    def _invalid(self, action: Action, resource: str, state: FormState, exc: FormValidationError, item_id: Optional[int]) -> MutationResult:
        state.errors = dict(exc.errors)
        logger.info("mutation.invalid action=%s resource=%s fields=%s", action, resource, sorted(exc.errors))
        return MutationResult(
            ok=False, action=action, resource=resource, message=exc.message,
            form=state, id=item_id, status_code=422,
        )

    async def _send(
        self,
        action: Action,
        resource: str,
        state: FormState,
        call: Callable[[], Any],
        *,
        item_id: Optional[int],
        success: Optional[str],
        failure: Optional[str],
        touches_form: bool = True,
    ) -> MutationResult:
        if touches_form:
            state.pending = True
        try:
            entity = await call()
        except SessionExpired:
            raise
        except (ApiError, TransportFailure) as exc:
            fallback = failure or failure_message(action, resource)
            message = (exc.server_message if isinstance(exc, ApiError) else None) or fallback
            logger.warning("mutation.failed action=%s resource=%s id=%s: %s", action, resource, item_id, exc)
            self.notifier.error(message)
            return MutationResult(
                ok=False, action=action, resource=resource, message=message,
                form=state, id=item_id, status_code=_failure_status(exc),
            )
        finally:
            if touches_form:
                state.pending = False

        # Mutation confirmed: invalidate before the form is dismissed
        self.cache.invalidate_many(invalidation_targets(resource))
        if touches_form:
            state.close()
        message = success or success_message(action, resource)
        self.notifier.success(message)
        if isinstance(entity, dict) and entity.get("id") is not None:
            item_id = entity["id"]
        logger.info("mutation.ok action=%s resource=%s id=%s", action, resource, item_id)
        return MutationResult(
            ok=True, action=action, resource=resource, message=message, form=state,
            id=item_id, entity=entity if isinstance(entity, dict) else None,
        )

    async def create(
        self,
        resource: str,
        values: Dict[str, Any],
        *,
        success: Optional[str] = None,
        failure: Optional[str] = None,
    ) -> MutationResult:
        state = self._prepare(resource, values, None)
        try:
            payload = shape_payload(resource, values, self.timezone_name)
        except FormValidationError as exc:
            return self._invalid("create", resource, state, exc, None)

        if resource == "inventories":
            try:
                existing = await self._inventory_for(payload["apartment"]["id"])
            except (ApiError, TransportFailure) as exc:
                message = failure or failure_message("create", resource)
                self.notifier.error(message)
                return MutationResult(
                    ok=False, action="create", resource=resource, message=message,
                    form=state, status_code=_failure_status(exc),
                )
            if existing is not None:
                # One inventory row per apartment: turn the create into an update
                existing_id = int(existing["id"])
                logger.info("mutation.upsert resource=inventories apartment=%s id=%s", payload["apartment"]["id"], existing_id)
                state.editing_id = existing_id
                return await self._send(
                    "update", resource, state,
                    lambda: self.client.update(resource, existing_id, payload),
                    item_id=existing_id,
                    success="Updated existing inventory for this apartment",
                    failure=failure,
                )

        return await self._send(
            "create", resource, state,
            lambda: self.client.create(resource, payload),
            item_id=None, success=success, failure=failure,
        )

    async def _inventory_for(self, apartment_id: int) -> Optional[Dict[str, Any]]:
        rows = await self.cache.get("inventories")
        for row in rows or []:
            apartment = row.get("apartment") if isinstance(row, dict) else None
            if isinstance(apartment, dict) and apartment.get("id") == apartment_id:
                return row
        return None

    async def update(
        self,
        resource: str,
        item_id: int,
        values: Dict[str, Any],
        *,
        success: Optional[str] = None,
        failure: Optional[str] = None,
    ) -> MutationResult:
        state = self._prepare(resource, values, item_id)
        try:
            payload = shape_payload(resource, values, self.timezone_name)
        except FormValidationError as exc:
            return self._invalid("update", resource, state, exc, item_id)
        return await self._send(
            "update", resource, state,
            lambda: self.client.update(resource, item_id, payload),
            item_id=item_id, success=success, failure=failure,
        )

    async def delete(self, resource: str, item_id: int, *, confirmed: bool) -> MutationResult:
        state = self.form(resource)
        if not confirmed:
            return MutationResult(
                ok=False, action="delete", resource=resource,
                message=f"Confirm to delete this {LABELS.get(resource, resource)}",
                form=state, id=item_id, status_code=400,
            )
        return await self._send(
            "delete", resource, state,
            lambda: self.client.delete(resource, item_id),
            item_id=item_id, success=None, failure=None, touches_form=False,
        )

    async def suggest_installment(
        self,
        payment_id: Any,
        installments: Any,
        current: Any = None,
        last_suggested: Any = None,
    ) -> Dict[str, Any]:
        """Suggested monthly amount for the selected payment, reconciled with the field's value."""
        suggestion: Optional[float] = None
        pid = _as_number(payment_id)
        if pid is not None:
            payments: List[Dict[str, Any]] = await self.cache.get("payments") or []
            payment = next((p for p in payments if _as_number(p.get("id")) == pid), None)
            if payment is not None:
                suggestion = suggest_monthly_amount(payment.get("amount"), installments)
        value, overwritten = reconcile_monthly_amount(current, last_suggested, suggestion)
        return {"suggested": suggestion, "monthly_amount": value, "overwritten": overwritten}
