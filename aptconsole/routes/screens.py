# Management screen endpoints: filtered/sorted/paginated lists, modal form state, and
# create/update/delete through the mutation pipeline.
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status

from .. import schemas
from ..console import Console, get_screen, require_session
from ..mutations import MutationResult
from ..screens import SCREENS, Screen
from ..rate_limit import rate_limit
from ..views import paginate

router = APIRouter()

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _int_param(raw: Optional[str], default: int) -> int:
    try:
        return int(raw) if raw not in (None, "") else default
    except ValueError:
        return default


def _error_text(error: Optional[BaseException]) -> Optional[str]:
    if error is None:
        return None
    return getattr(error, "message", None) or str(error)


def _writable(screen: Screen) -> Screen:
    if screen.read_only:
        raise HTTPException(status_code=status.HTTP_405_METHOD_NOT_ALLOWED, detail=f"{screen.title} is read-only")
    return screen


def _respond(result: MutationResult) -> Dict[str, Any]:
    if not result.ok:
        raise HTTPException(status_code=result.status_code, detail=result.as_dict())
    return result.as_dict()


@router.post(
    "/screens/installment-plans/suggestion",
    response_model=schemas.SuggestionRead,
)
async def installment_suggestion(
    payload: schemas.SuggestionRequest,
    console: Console = Depends(require_session),
) -> Dict[str, Any]:
    """
    Suggested monthly amount for a plan form: 60% of the payment's amount (after the
    40% down payment) spread over the installments. A manually edited amount is kept.
    """
    get_screen("installment-plans", console)
    return await console.pipeline.suggest_installment(
        payload.payment_id,
        payload.installments,
        payload.monthly_amount,
        payload.last_suggested,
    )


@router.get("/screens/{name}", response_model=schemas.ScreenPageRead)
async def list_screen(
    request: Request,
    screen: Screen = Depends(get_screen),
    console: Console = Depends(require_session),
) -> Dict[str, Any]:
    """
    Visible rows of a screen.

    Query parameters:
    - q: free-text search over the screen's search fields
    - one parameter per facet (e.g. status=PENDING, role=ADMIN, rating=5); ALL or empty disables it
    - <range>_min / <range>_max (e.g. price_min=100); blank or malformed bounds are ignored
    - sort: one of the screen's sort keys
    - page / page_size
    """
    params = request.query_params
    items = await console.cache.get(screen.resource)
    rows = screen.view_state(params).apply(items)
    page_size = min(max(_int_param(params.get("page_size"), DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    page = paginate(rows, _int_param(params.get("page"), 1), page_size)

    state = console.cache.peek(screen.resource)
    return {
        "screen": screen.name,
        "title": screen.title,
        **page.as_dict(),
        "items": screen.rows(page.items, console.row_context),
        "error": _error_text(state.error),
        "facets": {name: list(f.choices) for name, f in screen.facets.items()},
        "sorts": list(screen.sorts),
    }


@router.get("/screens/{name}/form", response_model=schemas.FormStateRead)
def form_state(screen: Screen = Depends(get_screen), console: Console = Depends(require_session)) -> Dict[str, Any]:
    return console.pipeline.form(screen.resource).as_dict()


@router.post("/screens/{name}/form", response_model=schemas.FormStateRead)
def open_form(
    body: Optional[Dict[str, Any]] = Body(default=None),
    screen: Screen = Depends(get_screen),
    console: Console = Depends(require_session),
) -> Dict[str, Any]:
    """Open the modal, empty for a create or prefilled with {"editing_id", "values"} for an edit."""
    _writable(screen)
    body = body or {}
    editing_id = body.get("editing_id")
    state = console.pipeline.open_form(
        screen.resource,
        int(editing_id) if editing_id is not None else None,
        body.get("values") or {},
    )
    return state.as_dict()


@router.delete("/screens/{name}/form", response_model=schemas.FormStateRead)
def close_form(screen: Screen = Depends(get_screen), console: Console = Depends(require_session)) -> Dict[str, Any]:
    return console.pipeline.close_form(screen.resource).as_dict()


@router.post(
    "/screens/{name}",
    response_model=schemas.MutationRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
async def create_item(
    values: Dict[str, Any] = Body(...),
    screen: Screen = Depends(get_screen),
    console: Console = Depends(require_session),
) -> Dict[str, Any]:
    _writable(screen)
    return _respond(await console.pipeline.create(screen.resource, values))


@router.put(
    "/screens/{name}/{item_id}",
    response_model=schemas.MutationRead,
    dependencies=[Depends(rate_limit("write"))],
)
async def update_item(
    item_id: int,
    values: Dict[str, Any] = Body(...),
    screen: Screen = Depends(get_screen),
    console: Console = Depends(require_session),
) -> Dict[str, Any]:
    _writable(screen)
    return _respond(await console.pipeline.update(screen.resource, item_id, values))


@router.delete(
    "/screens/{name}/{item_id}",
    response_model=schemas.MutationRead,
    dependencies=[Depends(rate_limit("write"))],
)
async def delete_item(
    item_id: int,
    confirm: bool = Query(False, description="Must be true; deletion cannot be undone"),
    screen: Screen = Depends(get_screen),
    console: Console = Depends(require_session),
) -> Dict[str, Any]:
    _writable(screen)
    return _respond(await console.pipeline.delete(screen.resource, item_id, confirmed=confirm))


@router.get("/listing/{apartment_id}")
async def apartment_details(apartment_id: int, console: Console = Depends(require_session)) -> Dict[str, Any]:
    """One apartment with its inventory row, if it has one."""
    apartment = await console.cache.get(("apartments", apartment_id))
    inventories = await console.cache.get("inventories")
    inventory = next(
        (i for i in inventories or [] if (i.get("apartment") or {}).get("id") == apartment_id),
        None,
    )
    ctx = console.row_context
    listing = SCREENS["apartment-listing"].rows([apartment or {}], ctx)[0]
    return {"apartment": listing, "inventory": inventory}
