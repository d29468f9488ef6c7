import pytest
from immutables import Map

from pystorekit import Action, ActionError, create_action
from pystorekit.actions import coerce_action, get_action_type


def test_create_action_without_arguments_has_no_payload():
    increment = create_action("counter/increment")

    action = increment()

    assert action.type == "counter/increment"
    assert action.payload is None
    assert increment.type == "counter/increment"
    assert increment.__name__ == "increment"


def test_create_action_single_argument_becomes_payload():
    add = create_action("counter/add")

    assert add(5).payload == 5


def test_create_action_converts_dict_payload_to_map():
    add_todo = create_action("todos/add")

    action = add_todo({"text": "write docs"})

    assert isinstance(action.payload, Map)
    assert action.payload["text"] == "write docs"


def test_create_action_multiple_arguments_and_kwargs():
    move = create_action("board/move")

    action = move(1, 2, piece="rook")

    assert action.payload == Map({0: 1, 1: 2, "piece": "rook"})


def test_create_action_with_prepare_fn():
    add_todo = create_action("todos/add", lambda text: {"text": text, "done": False})

    action = add_todo("buy milk")

    assert action.payload == Map(text="buy milk", done=False)


def test_action_creator_match():
    increment = create_action("counter/increment")
    decrement = create_action("counter/decrement")

    assert increment.match(increment())
    assert not increment.match(decrement())
    assert not increment.match({"type": "counter/increment"})


def test_action_is_immutable():
    action = Action("counter/increment", 1)

    with pytest.raises(AttributeError):
        action.payload = 2
    with pytest.raises(AttributeError):
        action.extra = True
    with pytest.raises(AttributeError):
        del action.type


def test_action_equality_and_hash():
    a = Action("counter/add", 5)
    b = Action("counter/add", 5)

    assert a == b
    assert hash(a) == hash(b)
    assert a != Action("counter/add", 6)
    # 不可哈希的負載仍然可以計算 hash
    assert hash(Action("list/set", [1, 2])) == hash("list/set")


def test_action_meta_dict_becomes_map():
    action = Action("x", meta={"request_id": "abc"})

    assert isinstance(action.meta, Map)
    assert "meta=" in repr(action)


def test_get_action_type():
    increment = create_action("counter/increment")

    assert get_action_type(increment) == "counter/increment"
    assert get_action_type("counter/reset") == "counter/reset"
    with pytest.raises(ActionError):
        get_action_type(42)


def test_coerce_action_from_mapping():
    action = coerce_action({"type": "counter/add", "payload": {"amount": 2}})

    assert action == Action("counter/add", Map(amount=2))


@pytest.mark.parametrize(
    "value",
    [
        {"payload": 1},
        {"type": 3},
        {"type": "counter/add", "extra": 1},
        42,
        None,
    ],
)
def test_coerce_action_rejects_invalid_values(value):
    with pytest.raises(ActionError):
        coerce_action(value)
