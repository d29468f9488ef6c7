import pytest

from pystorekit import configure_store, create_slice


def increment(state):
    state["value"] += 1


def decrement(state):
    state["value"] -= 1


def increment_by_amount(state, action):
    state["value"] += action.payload


@pytest.fixture
def counter_slice():
    return create_slice(
        "counter",
        {"value": 0, "status": "idle"},
        {
            "increment": increment,
            "decrement": decrement,
            "increment_by_amount": increment_by_amount,
        },
        selectors={
            "select_count": lambda counter: counter["value"],
            "select_status": lambda counter: counter["status"],
        },
    )


@pytest.fixture
def store(counter_slice):
    return configure_store([counter_slice])
