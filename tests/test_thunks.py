import asyncio
import gc

import pytest
from immutables import Map

from pystorekit import (
    AsyncOperationError, ReducerExecutionError, RejectWithValue, SerializedError, Thunk, configure_store,
    create_async_thunk, create_slice, global_error_handler, thunk, unwrap_result
)


async def _resolve(amount):
    await asyncio.sleep(0)
    return amount


async def _reject(amount):
    await asyncio.sleep(0)
    raise ValueError(f"cannot fetch {amount}")


fetch_count = create_async_thunk("counter/fetchCount", _resolve)
fetch_broken = create_async_thunk("counter/fetchBroken", _reject)


def _fulfilled(state, action):
    state["status"] = "idle"
    state["value"] += action.payload


def _extra_reducers(builder):
    for async_thunk in (fetch_count, fetch_broken):
        (builder
            .add_case(async_thunk.pending, lambda state: state.update(status="loading"))
            .add_case(async_thunk.rejected, lambda state: state.update(status="failed")))
    builder.add_case(fetch_count.fulfilled, _fulfilled)


@pytest.fixture
def async_store():
    counter = create_slice(
        "counter",
        {"value": 0, "status": "idle"},
        {"increment": lambda state: state.update(value=state["value"] + 1)},
        extra_reducers=_extra_reducers,
    )
    return configure_store([counter])


def _record_status(store):
    history = [store.get_state()["counter"]["status"]]
    store.subscribe(lambda: history.append(store.get_state()["counter"]["status"]))
    return history


def _record_types(store):
    types = []
    store.action_stream.subscribe(on_next=lambda action: types.append(action.type))
    return types


def test_async_thunk_action_types():
    assert fetch_count.types == (
        "counter/fetchCount/pending", "counter/fetchCount/fulfilled", "counter/fetchCount/rejected"
    )
    assert fetch_count.pending.type == "counter/fetchCount/pending"
    assert fetch_count.fulfilled.match(fetch_count.fulfilled(1, "id", 1))
    assert isinstance(fetch_count(1), Thunk)


@pytest.mark.asyncio
async def test_async_thunk_resolves(async_store):
    history = _record_status(async_store)
    types = _record_types(async_store)

    final_action = await async_store.dispatch(fetch_count(7))

    assert history == ["idle", "loading", "idle"]
    assert types == ["counter/fetchCount/pending", "counter/fetchCount/fulfilled"]
    assert async_store.get_state()["counter"]["value"] == 7
    assert unwrap_result(final_action) == 7


@pytest.mark.asyncio
async def test_async_thunk_rejects(async_store):
    history = _record_status(async_store)
    types = _record_types(async_store)

    final_action = await async_store.dispatch(fetch_broken(3))

    assert history == ["idle", "loading", "failed"]
    assert types == ["counter/fetchBroken/pending", "counter/fetchBroken/rejected"]
    assert async_store.get_state()["counter"]["value"] == 0
    assert final_action.error == SerializedError(name="ValueError", message="cannot fetch 3")
    assert final_action.payload == final_action.error

    with pytest.raises(AsyncOperationError) as exc_info:
        unwrap_result(final_action)
    assert exc_info.value.error.name == "ValueError"


@pytest.mark.asyncio
async def test_pending_is_dispatched_before_the_operation_runs(async_store):
    task = async_store.dispatch(fetch_count(2))

    assert isinstance(task, asyncio.Task)
    assert async_store.get_state()["counter"]["status"] == "loading"
    await task
    assert async_store.get_state()["counter"]["status"] == "idle"


@pytest.mark.asyncio
async def test_lifecycle_meta_shares_request_id(async_store):
    seen = []
    async_store.action_stream.subscribe(on_next=seen.append)

    await async_store.dispatch(fetch_count(5))

    pending, fulfilled = seen
    assert pending.meta["request_id"] == fulfilled.meta["request_id"]
    assert pending.meta["arg"] == 5
    assert pending.meta["request_status"] == "pending"
    assert fulfilled.meta["request_status"] == "fulfilled"


@pytest.mark.asyncio
async def test_concurrent_async_thunks(async_store):
    await asyncio.gather(
        async_store.dispatch(fetch_count(1)),
        async_store.dispatch(fetch_count(2)),
        async_store.dispatch(fetch_count(3)),
    )

    assert async_store.get_state()["counter"] == Map(value=6, status="idle")


@pytest.mark.asyncio
async def test_reject_with_value(async_store):
    async def validate(amount, thunk_api):
        if amount < 0:
            raise thunk_api.reject_with_value({"reason": "negative", "amount": amount})
        return amount

    validate_count = create_async_thunk("counter/validate", validate)

    final_action = await async_store.dispatch(validate_count(-1))

    assert final_action.type == "counter/validate/rejected"
    assert final_action.payload == Map(reason="negative", amount=-1)
    assert final_action.meta["rejected_with_value"] is True
    assert final_action.error.message == "Rejected"


@pytest.mark.asyncio
async def test_returned_reject_with_value():
    store = configure_store({"noop": lambda state=None, action=None: state or 0})
    rejecting = create_async_thunk("noop/check", lambda arg: RejectWithValue("bad input"))

    final_action = await store.dispatch(rejecting(None))

    assert final_action.payload == "bad input"
    with pytest.raises(AsyncOperationError):
        unwrap_result(final_action)


@pytest.mark.asyncio
async def test_payload_creator_receives_thunk_api(async_store):
    async def double_current(arg, thunk_api):
        thunk_api.dispatch({"type": "counter/increment"})
        return thunk_api.get_state()["counter"]["value"] * arg

    doubled = create_async_thunk("counter/double", double_current)

    final_action = await async_store.dispatch(doubled(2))

    assert final_action.payload == 2


def test_sync_payload_creator_without_running_loop(async_store):
    sync_fetch = create_async_thunk("counter/fetchCount", lambda amount: amount * 10)

    coroutine = async_store.dispatch(sync_fetch(1))

    # 沒有事件迴圈時返回 coroutine，pending 已經處理完畢
    assert async_store.get_state()["counter"]["status"] == "loading"
    final_action = asyncio.run(coroutine)
    assert final_action.type == "counter/fetchCount/fulfilled"
    assert async_store.get_state()["counter"] == Map(value=10, status="idle")


def test_thunk_decorator(async_store):
    @thunk
    def increment_twice():
        def run(dispatch, get_state):
            dispatch({"type": "counter/increment"})
            dispatch({"type": "counter/increment"})
            return get_state()["counter"]["value"]
        return run

    created = increment_twice()

    assert isinstance(created, Thunk)
    assert created.name == "increment_twice"
    assert async_store.dispatch(created) == 2


def test_unwrap_result_of_fulfilled_action():
    assert unwrap_result(fetch_count.fulfilled({"data": 1}, "id", None)) == Map(data=1)


@pytest.mark.asyncio
async def test_each_dispatch_gets_its_own_request_id(async_store):
    seen = []
    async_store.action_stream.subscribe(on_next=seen.append)
    same_thunk = fetch_count(1)

    await async_store.dispatch(same_thunk)
    await async_store.dispatch(same_thunk)

    pending_ids = [action.meta["request_id"] for action in seen if fetch_count.pending.match(action)]
    assert len(pending_ids) == 2
    assert pending_ids[0] != pending_ids[1]
    assert async_store.get_state()["counter"]["value"] == 2


@pytest.mark.asyncio
async def test_payload_creator_starts_before_dispatch_returns(async_store):
    async def bump_then_wait(arg, thunk_api):
        thunk_api.dispatch({"type": "counter/increment"})
        await asyncio.sleep(0)
        return arg

    bump = create_async_thunk("counter/bump", bump_then_wait)

    task = async_store.dispatch(bump(5))

    assert async_store.get_state()["counter"]["value"] == 1
    assert not task.done()
    final_action = await task
    assert final_action.type == "counter/bump/fulfilled"


@pytest.mark.asyncio
async def test_unawaited_thunk_errors_go_to_global_error_handler():
    load = create_async_thunk("broken/load", _resolve)
    broken = create_slice(
        "broken", {"value": 0}, {},
        extra_reducers=lambda builder: builder.add_case(load.fulfilled, lambda state: 1 / 0),
    )
    store = configure_store([broken])

    loop = asyncio.get_running_loop()
    unretrieved = []
    loop.set_exception_handler(lambda loop, context: unretrieved.append(context["message"]))
    reported = []

    def handler(error, action):
        reported.append(type(error))

    global_error_handler.register_handler(handler)
    try:
        store.dispatch(load(1))
        for _ in range(5):
            await asyncio.sleep(0)
        gc.collect()
    finally:
        global_error_handler.unregister_handler(handler)
        loop.set_exception_handler(None)

    assert ReducerExecutionError in reported
    assert unretrieved == []
    assert not load._tasks


@pytest.mark.asyncio
async def test_cancelled_thunk_dispatches_rejected(async_store):
    async def wait_forever(arg):
        await asyncio.sleep(3600)

    stalled = create_async_thunk("counter/fetchCount", wait_forever)
    seen = []
    async_store.action_stream.subscribe(on_next=seen.append)

    task = async_store.dispatch(stalled(1))
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert [action.type for action in seen] == ["counter/fetchCount/pending", "counter/fetchCount/rejected"]
    assert seen[-1].error.name == "CancelledError"
    assert async_store.get_state()["counter"]["status"] == "failed"
