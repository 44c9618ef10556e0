# View-state tests: search, range/enum filters, sorting and pagination over cached rows.
from aptconsole.views import (
    ALL,
    EnumFilter,
    RangeFilter,
    SortKey,
    TextFilter,
    ViewState,
    get_path,
    paginate,
    parse_bound,
)

APARTMENTS = [
    {"id": 1, "location": "Downtown Loft", "features": "balcony", "price": 1200, "size": 50, "available": True},
    {"id": 2, "location": "Harbor View", "features": "sea view, parking", "price": 2500, "size": 90, "available": False},
    {"id": 3, "location": "Old Town", "features": None, "price": 800, "size": 35, "available": True},
    {"id": 4, "location": "Uptown", "features": "gym", "price": None, "size": 70, "available": True},
]


def ids(rows):
    return [r["id"] for r in rows]


def test_get_path_walks_nested_dicts():
    payment = {"booking": {"user": {"username": "ana"}}}
    assert get_path(payment, "booking.user.username") == "ana"
    assert get_path(payment, "booking.apartment.location") is None
    assert get_path({"booking": None}, "booking.user") is None


def test_parse_bound_ignores_blank_and_malformed_input():
    assert parse_bound("") is None
    assert parse_bound("   ") is None
    assert parse_bound("abc") is None
    assert parse_bound(None) is None
    assert parse_bound("12.5") == 12.5
    # Integer bounds truncate
    assert parse_bound("12.9", integer=True) == 12


def test_text_filter_is_case_insensitive_over_any_field():
    f = TextFilter("PARKING", ("location", "features"))
    assert ids([a for a in APARTMENTS if f.matches(a)]) == [2]
    assert all(TextFilter("", ("location",)).matches(a) for a in APARTMENTS)


def test_range_filter_inclusive_and_open_ended():
    rows = ViewState(filters=[RangeFilter("price", "800", "1200")]).apply(APARTMENTS)
    assert ids(rows) == [1, 3]

    rows = ViewState(filters=[RangeFilter("price", minimum="1000")]).apply(APARTMENTS)
    assert ids(rows) == [1, 2]


def test_range_filter_with_malformed_bounds_is_not_a_constraint():
    rows = ViewState(filters=[RangeFilter("price", "abc", "")]).apply(APARTMENTS)
    assert ids(rows) == [1, 2, 3, 4]


def test_enum_filter_all_selects_everything_and_compares_as_strings():
    feedbacks = [{"id": 1, "rating": 5}, {"id": 2, "rating": 3}, {"id": 3, "rating": 5}]
    assert ids(ViewState(filters=[EnumFilter("rating", "5")]).apply(feedbacks)) == [1, 3]
    assert ids(ViewState(filters=[EnumFilter("rating", ALL)]).apply(feedbacks)) == [1, 2, 3]
    assert ids(ViewState(filters=[EnumFilter("rating", "")]).apply(feedbacks)) == [1, 2, 3]


def test_enum_filter_with_derived_value():
    status = EnumFilter("available", "UNAVAILABLE", lambda a: "AVAILABLE" if a["available"] else "UNAVAILABLE")
    assert ids(ViewState(filters=[status]).apply(APARTMENTS)) == [2]


def test_sort_puts_missing_values_last_in_both_directions():
    assert ids(SortKey("price").apply(APARTMENTS)) == [3, 1, 2, 4]
    assert ids(SortKey("price", descending=True).apply(APARTMENTS)) == [2, 1, 3, 4]


def test_sort_is_stable_for_equal_keys():
    rows = [{"id": 1, "stock": 2}, {"id": 2, "stock": 1}, {"id": 3, "stock": 2}]
    assert ids(SortKey("stock").apply(rows)) == [2, 1, 3]
    assert ids(SortKey("stock", descending=True).apply(rows)) == [1, 3, 2]
    # Sorting an already sorted list changes nothing
    once = SortKey("stock").apply(rows)
    assert SortKey("stock").apply(once) == once


def test_text_sort_is_case_insensitive():
    rows = [{"id": 1, "username": "bob"}, {"id": 2, "username": "Alice"}, {"id": 3, "username": "carol"}]
    assert ids(SortKey("username", numeric=False).apply(rows)) == [2, 1, 3]


def test_search_filters_and_sort_compose():
    view = ViewState(
        search=TextFilter("o", ("location",)),
        filters=[RangeFilter("size", "30", "80", integer=True)],
        sort=SortKey("size", descending=True),
    )
    # Downtown Loft (50), Old Town (35), Uptown (70) match; Harbor View is 90
    assert ids(view.apply(APARTMENTS)) == [4, 1, 3]


def test_apply_tolerates_missing_data():
    assert ViewState().apply(None) == []


def test_paginate_clamps_page_into_range():
    rows = list(range(45))
    page = paginate(rows, page=3, page_size=20)
    assert page.items == list(range(40, 45))
    assert (page.total, page.pages, page.page) == (45, 3, 3)

    assert paginate(rows, page=99, page_size=20).page == 3
    assert paginate(rows, page=0, page_size=20).items == list(range(20))


def test_paginate_empty_has_one_page():
    page = paginate([], page=5)
    assert page.as_dict() == {"items": [], "total": 0, "page": 1, "page_size": 20, "pages": 1}
