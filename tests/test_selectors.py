import pytest
from immutables import Map

from pystorekit import create_selector
from pystorekit import store_selectors


def select_items(state):
    return state["items"]


def select_filter(state):
    return state["filter"]


def _state(items=("a", "b", "c"), filter_="a"):
    return Map(items=items, filter=filter_)


def test_single_selector_is_returned_unchanged():
    assert create_selector(select_items) is select_items


def test_result_is_memoized_on_identical_inputs():
    calls = []

    def visible(items, filter_):
        calls.append(1)
        return tuple(item for item in items if item != filter_)

    select_visible = create_selector(select_items, select_filter, result_fn=visible)
    state = _state()

    first = select_visible(state)
    second = select_visible(state.set("unrelated", 1))

    assert first == ("b", "c")
    assert second is first
    assert calls == [1]
    assert select_visible.cache_info() == store_selectors.CacheInfo(hits=1, misses=1, maxsize=128, currsize=1)


def test_changed_input_recomputes():
    select_count = create_selector(select_items, result_fn=len)

    assert select_count(_state()) == 3
    assert select_count(_state(items=("a",))) == 1
    assert select_count.cache_info().misses == 2


def test_shallow_comparison_uses_identity():
    select_count = create_selector(select_items, result_fn=len)

    select_count(_state(items=("a", "b")))
    select_count(_state(items=tuple(["a", "b"])))

    assert select_count.cache_info().hits == 0


def test_deep_comparison_matches_equal_structures():
    select_count = create_selector(select_items, result_fn=len, deep=True)

    select_count(_state(items=(Map(id=1),)))
    select_count(_state(items=(Map(id=1),)))

    assert select_count.cache_info().hits == 1


def test_maxsize_evicts_oldest_entry():
    select_count = create_selector(select_items, result_fn=len, maxsize=2)
    first, second, third = _state(items=("a",)), _state(items=("b",)), _state(items=("c",))

    for state in (first, second, third):
        select_count(state)
    select_count(first)

    info = select_count.cache_info()
    assert info.currsize == 2
    assert info.misses == 4


def test_ttl_expires_entries(monkeypatch):
    clock = [100.0]
    monkeypatch.setattr(store_selectors.time, "monotonic", lambda: clock[0])
    select_count = create_selector(select_items, result_fn=len, ttl=5)
    state = _state()

    select_count(state)
    clock[0] += 1
    select_count(state)
    clock[0] += 10
    select_count(state)

    assert select_count.cache_info().hits == 1
    assert select_count.cache_info().misses == 2


def test_cache_clear():
    select_count = create_selector(select_items, result_fn=len)
    select_count(_state())

    select_count.cache_clear()

    assert select_count.cache_info() == (0, 0, 128, 0)


def test_default_result_fn_returns_inputs():
    select_both = create_selector(select_items, select_filter)

    assert select_both(_state()) == (("a", "b", "c"), "a")


def test_selector_arguments_are_forwarded():
    select_item = create_selector(
        lambda state, index: state["items"][index],
        result_fn=str.upper,
    )

    assert select_item(_state(), 1) == "B"


def test_result_fn_errors_propagate():
    select_broken = create_selector(select_items, result_fn=lambda items: items[10])

    with pytest.raises(IndexError):
        select_broken(_state())
    assert select_broken.cache_info().currsize == 0


def test_invalid_arguments():
    with pytest.raises(TypeError):
        create_selector(result_fn=len)
    with pytest.raises(ValueError):
        create_selector(select_items, result_fn=len, maxsize=0)
