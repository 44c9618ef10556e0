# Filter/sort/paginate view-state for management screens.
# Pure functions over the cached list: the visible rows are recomputed from scratch on every call.
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

ALL = "ALL"

Number = Union[int, float]


def get_path(item: Any, path: str) -> Any:
    """Resolve a dotted path ("booking.user.username") through nested dicts; None if any hop is missing."""
    value = item
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
        if value is None:
            return None
    return value


def parse_bound(raw: Any, integer: bool = False) -> Optional[Number]:
    """
    Parse a range bound typed by a user. Empty or malformed input means "no bound".
    Integer bounds truncate like parseInt ("12.9" -> 12).
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if math.isnan(value) or math.isinf(value):
        return None
    return int(value) if integer else value


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


@dataclass
class TextFilter:
    """Case-insensitive substring match against any of the given fields."""
    query: str = ""
    fields: Sequence[str] = ()

    def matches(self, item: Any) -> bool:
        needle = (self.query or "").lower()
        if not needle:
            return True
        for path in self.fields:
            value = get_path(item, path)
            if isinstance(value, str) and needle in value.lower():
                return True
        return False


@dataclass
class RangeFilter:
    """Inclusive [minimum, maximum] on a numeric field; either side may be open."""
    field: str
    minimum: Any = None
    maximum: Any = None
    integer: bool = False

    def matches(self, item: Any) -> bool:
        low = parse_bound(self.minimum, self.integer)
        high = parse_bound(self.maximum, self.integer)
        if low is None and high is None:
            return True
        value = _to_number(get_path(item, self.field))
        if value is None:
            return False
        if low is not None and value < low:
            return False
        if high is not None and value > high:
            return False
        return True


@dataclass
class EnumFilter:
    """
    Exact match on a field (or a derived value). ALL or empty selects everything.
    Values compare in string form so a numeric rating matches the facet value "4".
    """
    field: str
    value: Optional[str] = None
    extract: Optional[Callable[[Any], Any]] = None

    def matches(self, item: Any) -> bool:
        if self.value is None or self.value == "" or self.value == ALL:
            return True
        actual = self.extract(item) if self.extract else get_path(item, self.field)
        if actual is None:
            return False
        return str(actual) == str(self.value)


@dataclass
class SortKey:
    field: str
    descending: bool = False
    numeric: bool = True

    def _value(self, item: Any) -> Any:
        raw = get_path(item, self.field)
        if self.numeric:
            return _to_number(raw)
        return raw.casefold() if isinstance(raw, str) else None

    def apply(self, items: List[Any]) -> List[Any]:
        # Stable in both directions; rows without a usable value go last
        present = [i for i in items if self._value(i) is not None]
        missing = [i for i in items if self._value(i) is None]
        return sorted(present, key=self._value, reverse=self.descending) + missing


@dataclass
class ViewState:
    search: TextFilter = field(default_factory=TextFilter)
    filters: List[Union[RangeFilter, EnumFilter]] = field(default_factory=list)
    sort: Optional[SortKey] = None

    def apply(self, items: Optional[Sequence[Any]]) -> List[Any]:
        rows = [
            item for item in (items or [])
            if self.search.matches(item) and all(f.matches(item) for f in self.filters)
        ]
        if self.sort is not None:
            rows = self.sort.apply(rows)
        return rows


@dataclass
class Page:
    items: List[Any]
    total: int
    page: int
    page_size: int
    pages: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "pages": self.pages,
        }


def paginate(items: Sequence[Any], page: int = 1, page_size: int = 20) -> Page:
    """Slice one page out of the visible rows; the page number is clamped into range."""
    page_size = max(int(page_size), 1)
    total = len(items)
    pages = max(math.ceil(total / page_size), 1)
    page = min(max(int(page), 1), pages)
    start = (page - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        total=total,
        page=page,
        page_size=page_size,
        pages=pages,
    )
