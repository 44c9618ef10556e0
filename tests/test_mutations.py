# Mutation pipeline tests: payload shaping, local validation, invalidation, inventory upsert
# and the installment-plan monthly amount suggestion.
import asyncio
import os

import pytest

from aptconsole.config import Settings
from aptconsole.console import build_console
from aptconsole.errors import FormValidationError
from aptconsole.mutations import (
    invalidation_targets,
    reconcile_monthly_amount,
    shape_payload,
    success_message,
    failure_message,
    suggest_monthly_amount,
    to_iso_instant,
)

API_BASE_URL = os.environ["API_BASE_URL"]


def run_with_console(transport, scenario):
    """Build a console against the fake backend and run an async scenario with it."""
    async def _run():
        console = build_console(Settings(api_base_url=API_BASE_URL, cache_stale_seconds=None), transport=transport)
        try:
            return await scenario(console)
        finally:
            await console.aclose()

    return asyncio.run(_run())


# ISO instants
def test_date_only_is_midnight_utc():
    assert to_iso_instant("2025-01-10") == "2025-01-10T00:00:00.000Z"


def test_naive_datetime_is_read_in_configured_timezone():
    assert to_iso_instant("2025-01-10T14:30") == "2025-01-10T14:30:00.000Z"
    # EST is UTC-5 in January
    assert to_iso_instant("2025-01-10T14:30", "America/New_York") == "2025-01-10T19:30:00.000Z"


def test_offsets_are_converted_to_utc():
    assert to_iso_instant("2025-01-10T14:30:00+02:00") == "2025-01-10T12:30:00.000Z"
    assert to_iso_instant("2025-01-10T14:30:00.250Z") == "2025-01-10T14:30:00.250Z"


def test_blank_date_is_none_and_garbage_raises():
    assert to_iso_instant("") is None
    with pytest.raises(ValueError):
        to_iso_instant("next tuesday")


# Payload shaping
def test_booking_payload_uses_id_stubs_and_iso_date():
    payload = shape_payload("bookings", {"userId": "3", "apartmentId": 5, "bookingDate": "2025-01-10"})
    assert payload == {
        "user": {"id": 3},
        "apartment": {"id": 5},
        "bookingDate": "2025-01-10T00:00:00.000Z",
        "status": "PENDING",
    }


def test_nested_ref_is_accepted_as_well_as_id_field():
    payload = shape_payload("payments", {"booking": {"id": 9, "status": "CONFIRMED"}, "amount": "250"})
    assert payload["booking"] == {"id": 9}
    assert payload["amount"] == 250.0
    assert payload["paymentDate"] is None


def test_apartment_payload_coerces_numbers():
    payload = shape_payload(
        "apartments",
        {"location": " Old Town ", "price": "1200.50", "size": "45", "features": "lift", "photoUrl": ""},
    )
    assert payload == {
        "location": "Old Town",
        "price": 1200.5,
        "size": 45,
        "features": "lift",
        "photoUrl": None,
        "available": True,
    }


def test_user_payload_omits_blank_password():
    payload = shape_payload("users", {"username": "ana", "email": "ana@acme.org", "password": ""})
    assert payload == {"username": "ana", "email": "ana@acme.org", "role": "USER"}


def test_local_validation_reports_every_field():
    with pytest.raises(FormValidationError) as exc:
        shape_payload("apartments", {"location": "X", "price": "abc", "size": "2.5"})
    assert exc.value.errors == {"price": "Price must be a number", "size": "Size must be a whole number"}


def test_schema_errors_are_mapped_to_form_fields():
    with pytest.raises(FormValidationError) as exc:
        shape_payload("feedbacks", {"userId": 1, "apartmentId": 0, "rating": 7})
    assert set(exc.value.errors) == {"apartmentId", "rating"}


def test_missing_required_date_is_reported():
    with pytest.raises(FormValidationError) as exc:
        shape_payload("bookings", {"userId": 1, "apartmentId": 2, "bookingDate": "someday"})
    assert exc.value.errors == {"bookingDate": "Booking date is not a valid date"}


def test_messages_and_invalidation_targets():
    assert success_message("create", "apartments") == "Apartment created successfully!"
    assert success_message("delete", "installment-plans") == "Installment plan deleted successfully!"
    assert failure_message("update", "payments") == "Failed to update payment"
    assert invalidation_targets("payments") == ("payments", "installment-plans", "dashboard")
    assert success_message("create", "inventories") == "Inventory item created successfully!"
    assert failure_message("create", "inventories") == "Failed to create inventory item"
    assert invalidation_targets("feedbacks") == ("feedbacks",)


# Installment suggestion
def test_suggestion_is_sixty_percent_spread_over_installments():
    assert suggest_monthly_amount(1000, 4) == 150.0
    assert suggest_monthly_amount("1000", "3") == 200.0
    assert suggest_monthly_amount(100, 3) == 20.0


def test_no_suggestion_without_amount_or_installments():
    assert suggest_monthly_amount(None, 4) is None
    assert suggest_monthly_amount(1000, 0) is None
    assert suggest_monthly_amount(1000, "") is None
    assert suggest_monthly_amount(1000, 2.5) is None


def test_reconcile_overwrites_blank_or_previous_suggestion_only():
    assert reconcile_monthly_amount("", None, 150.0) == (150.0, True)
    assert reconcile_monthly_amount(150.0, 150.0, 200.0) == (200.0, True)
    # Manually edited amount survives
    assert reconcile_monthly_amount(175, 150.0, 200.0) == (175, False)
    assert reconcile_monthly_amount(175, None, None) == (175, False)


# Pipeline against the fake backend
def test_invalid_form_never_reaches_the_network(backend, transport):
    async def scenario(console):
        return await console.pipeline.create("apartments", {"location": "", "price": "x", "size": 1})

    result = run_with_console(transport, scenario)
    assert result.ok is False
    assert result.status_code == 422
    assert result.form.open is True
    assert "price" in result.form.errors
    assert backend.count("POST", "/apartments") == 0


def test_successful_create_invalidates_dependents_and_closes_form(backend, transport):
    backend.seed("apartments", location="Old Town", price=800, size=35, available=True)

    async def scenario(console):
        await console.cache.get("apartments")
        await console.cache.get("bookings")
        await console.cache.get("feedbacks")
        result = await console.pipeline.create("apartments", {"location": "Harbor", "price": 2000, "size": 80})
        return result, console.cache.keys(), console.notifier.drain()

    result, keys, notes = run_with_console(transport, scenario)
    assert result.ok is True
    assert result.id == result.entity["id"]
    assert result.form.open is False
    assert result.form.values == {}
    # Apartments are embedded in bookings; feedbacks too
    assert keys == []
    assert notes[-1] == {"level": "success", "message": "Apartment created successfully!"}


def test_failed_create_keeps_form_open_with_server_message(backend, transport):
    backend.fail("POST", "/apartments", 400, {"message": "Location already listed"})

    async def scenario(console):
        await console.cache.get("apartments")
        result = await console.pipeline.create("apartments", {"location": "Harbor", "price": 2000, "size": 80})
        return result, console.cache.keys(), console.notifier.drain()

    result, keys, notes = run_with_console(transport, scenario)
    assert result.ok is False
    assert result.status_code == 400
    assert result.message == "Location already listed"
    assert result.form.open is True
    assert result.form.pending is False
    assert result.form.values["location"] == "Harbor"
    # Nothing confirmed, nothing invalidated
    assert keys == ["apartments"]
    assert notes == [{"level": "error", "message": "Location already listed"}]


def test_server_error_without_message_uses_fallback(backend, transport):
    backend.fail("PUT", "/payments/1", 500)
    backend.seed("payments", amount=100)

    async def scenario(console):
        return await console.pipeline.update("payments", 1, {"bookingId": 1, "amount": 120})

    result = run_with_console(transport, scenario)
    assert result.status_code == 502
    assert result.message == "Failed to update payment"


def test_inventory_create_for_listed_apartment_becomes_update(backend, transport):
    apartment = backend.seed("apartments", location="Old Town", price=800, size=35)
    inventory = backend.seed("inventories", apartment={"id": apartment["id"]}, stock=1, status="AVAILABLE")

    async def scenario(console):
        return await console.pipeline.create(
            "inventories", {"apartmentId": apartment["id"], "stock": 4, "status": "RESERVED"}
        )

    result = run_with_console(transport, scenario)
    assert result.ok is True
    assert result.action == "update"
    assert result.id == inventory["id"]
    assert result.message == "Updated existing inventory for this apartment"
    assert backend.count("POST", "/inventories") == 0
    assert backend.count("PUT", f"/inventories/{inventory['id']}") == 1
    assert backend.collections["inventories"][inventory["id"]]["stock"] == 4


def test_delete_requires_confirmation(backend, transport):
    backend.seed("feedbacks", rating=4)

    async def scenario(console):
        unconfirmed = await console.pipeline.delete("feedbacks", 1, confirmed=False)
        confirmed = await console.pipeline.delete("feedbacks", 1, confirmed=True)
        return unconfirmed, confirmed

    unconfirmed, confirmed = run_with_console(transport, scenario)
    assert unconfirmed.ok is False
    assert unconfirmed.status_code == 400
    assert confirmed.ok is True
    assert confirmed.message == "Feedback deleted successfully!"
    assert backend.count("DELETE", "/feedbacks/1") == 1
    assert backend.collections["feedbacks"] == {}


def test_suggest_installment_reads_cached_payment(backend, transport):
    payment = backend.seed("payments", amount=1000, status="COMPLETED")

    async def scenario(console):
        fresh = await console.pipeline.suggest_installment(payment["id"], 4)
        edited = await console.pipeline.suggest_installment(payment["id"], 5, current=175, last_suggested=150.0)
        missing = await console.pipeline.suggest_installment(999, 4, current="")
        return fresh, edited, missing

    fresh, edited, missing = run_with_console(transport, scenario)
    assert fresh == {"suggested": 150.0, "monthly_amount": 150.0, "overwritten": True}
    assert edited == {"suggested": 120.0, "monthly_amount": 175, "overwritten": False}
    assert missing == {"suggested": None, "monthly_amount": "", "overwritten": False}
    assert backend.count("GET", "/payments") == 1
