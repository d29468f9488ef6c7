import pytest
from immutables import Map

from pystorekit import Action, ConfigurationError, create_action, create_slice, create_selector, init_store


def test_generated_action_creators(counter_slice):
    increment = counter_slice.actions.increment

    assert increment.type == "counter/increment"
    assert increment() == Action("counter/increment")
    assert counter_slice.actions.increment_by_amount(5).payload == 5
    assert counter_slice.action_types == {
        "increment": "counter/increment",
        "decrement": "counter/decrement",
        "increment_by_amount": "counter/increment_by_amount",
    }
    # 創建器在 slice 的生命週期內保持同一個物件
    assert counter_slice.actions.increment is increment


def test_slice_reducer_starts_from_initial_state(counter_slice):
    state = counter_slice.reducer(None, init_store())

    assert state == Map(value=0, status="idle")
    assert counter_slice.get_initial_state() is state


def test_slice_reducer_transitions(counter_slice):
    actions = counter_slice.actions
    state = counter_slice.get_initial_state()

    state = counter_slice.reducer(state, actions.increment())
    state = counter_slice.reducer(state, actions.increment_by_amount(5))
    state = counter_slice.reducer(state, actions.decrement())

    assert state["value"] == 5
    assert state["status"] == "idle"


def test_slice_ignores_foreign_actions(counter_slice):
    state = counter_slice.get_initial_state()

    assert counter_slice.reducer(state, Action("todos/add", "x")) is state


def test_duplicate_transition_name_is_rejected():
    with pytest.raises(ConfigurationError):
        create_slice(
            "counter",
            0,
            [("increment", lambda state: state + 1), ("increment", lambda state: state + 2)],
        )


def test_empty_slice_name_is_rejected():
    with pytest.raises(ConfigurationError):
        create_slice("", 0, {})


def test_transition_with_prepare_fn():
    todos = create_slice(
        "todos",
        (),
        {
            "add": (
                lambda state, action: state.append(action.payload),
                lambda text: {"text": text, "done": False},
            ),
        },
    )

    state = todos.reducer(None, todos.actions.add("write docs"))

    assert state == (Map(text="write docs", done=False),)


def test_extra_reducers_mapping_and_builder(counter_slice):
    reset_all = create_action("app/reset")

    mapped = create_slice(
        "history",
        {"resets": 0},
        {},
        extra_reducers={reset_all.type: lambda state: state.update(resets=state["resets"] + 1)},
    )
    built = create_slice(
        "status",
        {"last": None},
        {},
        extra_reducers=lambda builder: builder.add_case(
            counter_slice.actions.increment, lambda state, action: state.update(last=action.type)
        ),
    )

    assert mapped.reducer(None, reset_all())["resets"] == 1
    assert built.reducer(None, counter_slice.actions.increment())["last"] == "counter/increment"


def test_own_transition_overrides_extra_case():
    own = create_slice(
        "counter",
        0,
        {"reset": lambda state: 0},
        extra_reducers={"counter/reset": lambda state: 99},
    )

    assert own.reducer(5, own.actions.reset()) == 0


def test_invalid_extra_reducers():
    with pytest.raises(ConfigurationError):
        create_slice("counter", 0, {}, extra_reducers=42)


def test_slice_selectors(counter_slice):
    root_state = Map(counter=Map(value=3, status="loading"))

    assert counter_slice.selectors.select_count(root_state) == 3
    assert counter_slice.selectors.select_status(root_state) == "loading"
    # 缺少鍵時使用初始狀態
    assert counter_slice.selectors.select_count(Map()) == 0

    local = counter_slice.get_selectors()
    assert local.select_count(Map(value=8, status="idle")) == 8


def test_slice_selectors_compose_with_create_selector(counter_slice):
    select_double = create_selector(counter_slice.selectors.select_count, result_fn=lambda value: value * 2)

    assert select_double(Map(counter=Map(value=4, status="idle"))) == 8
