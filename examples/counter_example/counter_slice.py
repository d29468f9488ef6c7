from pystorekit import create_async_thunk, create_slice, thunk

from counter_api import fetch_count


async def _fetch_amount(amount):
    response = await fetch_count(amount)
    # 返回值會成為 fulfilled action 的 payload
    return response["data"]


# dispatch(increment_async(10)) 會依序產生 pending 與 fulfilled (或 rejected)
increment_async = create_async_thunk("counter/fetchCount", _fetch_amount)


# ====== Handlers ======
def increment(state):
    state["value"] += 1


def decrement(state):
    state["value"] -= 1


def increment_by_amount(state, action):
    state["value"] += action.payload


def counter_extra_reducers(builder):
    (builder
        .add_case(increment_async.pending, lambda state: state.update(status="loading"))
        .add_case(increment_async.fulfilled, _on_fetch_fulfilled)
        .add_case(increment_async.rejected, lambda state: state.update(status="failed")))


def _on_fetch_fulfilled(state, action):
    state["status"] = "idle"
    state["value"] += action.payload


# ====== Slice ======
counter_slice = create_slice(
    "counter",
    {"value": 0, "status": "idle"},
    {
        "increment": increment,
        "decrement": decrement,
        "increment_by_amount": increment_by_amount,
    },
    extra_reducers=counter_extra_reducers,
    selectors={
        "select_count": lambda counter: counter["value"],
        "select_status": lambda counter: counter["status"],
    },
)

actions = counter_slice.actions
select_count = counter_slice.selectors.select_count
select_status = counter_slice.selectors.select_status


@thunk
def increment_if_odd(amount):
    """只有在目前的值為奇數時才加上 amount。"""
    def run(dispatch, get_state):
        if select_count(get_state()) % 2 == 1:
            dispatch(actions.increment_by_amount(amount))
    return run
