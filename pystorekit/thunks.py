"""
PyStoreKit 的 Thunk 與非同步生命週期模組。

Thunk 是 dispatch 的另一種變體：它不是資料，而是一段會被 ThunkMiddleware
以 (dispatch, get_state) 執行的邏輯。create_async_thunk 會把一個非同步操作
包裝成 pending / fulfilled / rejected 三個 action。
"""
import asyncio
import functools
import inspect
import logging
import uuid
from typing import Any, Awaitable, Callable, NamedTuple, Optional, Set

from .actions import Action, _process_payload
from .errors import AsyncOperationError, SerializedError, global_error_handler, miniserialize_error
from .types import DispatchFunction, GetState, ThunkFunction

logger = logging.getLogger(__name__)

_UNSET = object()


class Thunk:
    """
    dispatch 的 Effect 變體，包裝一個 (dispatch, get_state) 函數。

    永遠不會送到 reducer；只有 middleware 會執行它。
    """

    __slots__ = ("fn", "name")

    def __init__(self, fn: ThunkFunction, name: Optional[str] = None) -> None:
        if not callable(fn):
            raise TypeError(f"Thunk expects a callable, got {type(fn).__name__}")
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "thunk")

    def __call__(self, dispatch: DispatchFunction, get_state: GetState) -> Any:
        return self.fn(dispatch, get_state)

    def __repr__(self) -> str:
        return f"Thunk({self.name})"


def as_thunk(value: Any, name: Optional[str] = None) -> Thunk:
    """將 callable 轉為 Thunk；已經是 Thunk 時原樣返回。"""
    if isinstance(value, Thunk):
        return value
    return Thunk(value, name)


def thunk(creator: Callable[..., ThunkFunction]) -> Callable[..., Thunk]:
    """
    裝飾器：讓 thunk 創建器返回 Thunk 物件。

    用法:
        ```python
        @thunk
        def increment_if_odd(amount):
            def run(dispatch, get_state):
                if get_state()["counter"]["value"] % 2 == 1:
                    dispatch(increment_by_amount(amount))
            return run

        store.dispatch(increment_if_odd(10))
        ```
    """
    @functools.wraps(creator)
    def wrapper(*args: Any, **kwargs: Any) -> Thunk:
        return as_thunk(creator(*args, **kwargs), creator.__name__)
    return wrapper


class RejectWithValue(Exception):
    """由 payload creator 返回或拋出，讓 rejected action 攜帶指定的 payload。"""

    def __init__(self, value: Any) -> None:
        super().__init__("Rejected")
        self.value = value


class ThunkApi:
    """傳給 payload creator 的第二個參數。"""

    __slots__ = ("dispatch", "get_state", "request_id", "arg")

    def __init__(self, dispatch: DispatchFunction, get_state: GetState, request_id: str, arg: Any) -> None:
        self.dispatch = dispatch
        self.get_state = get_state
        self.request_id = request_id
        self.arg = arg

    @staticmethod
    def reject_with_value(value: Any) -> RejectWithValue:
        return RejectWithValue(value)


class AsyncActionTypes(NamedTuple):
    pending: str
    fulfilled: str
    rejected: str


def _meta(request_id: Optional[str], arg: Any, status: str, **extra: Any) -> dict:
    meta = {"arg": arg, "request_id": request_id, "request_status": status}
    meta.update(extra)
    return meta


def _with_type(build: Callable[..., Action[Any]], action_type: str) -> Callable[..., Action[Any]]:
    def creator(*args: Any, **kwargs: Any) -> Action[Any]:
        return build(*args, **kwargs)

    def match(action: Any) -> bool:
        return isinstance(action, Action) and action.type == action_type

    creator.type = action_type  # type: ignore
    creator.match = match  # type: ignore
    creator.__name__ = action_type.rsplit("/", 1)[-1]
    return creator


def _accepts_thunk_api(payload_creator: Callable[..., Any]) -> bool:
    try:
        parameters = inspect.signature(payload_creator).parameters.values()
    except (TypeError, ValueError):
        return False
    positional = 0
    for param in parameters:
        if param.kind == param.VAR_POSITIONAL:
            return True
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            positional += 1
    return positional >= 2


class AsyncThunk:
    """
    非同步 action 生命週期管理器。

    呼叫 `async_thunk(arg)` 會返回一個 Thunk，dispatch 後:
        1. 同步 dispatch pending (每次 dispatch 產生新的 request_id)
        2. 同步呼叫 payload_creator(arg)，在有事件迴圈時立即執行到第一個暫停點，
           之後等待其結果
        3. 成功時 dispatch fulfilled (payload 為結果)，失敗時 dispatch rejected
           (payload 為 SerializedError)，兩者只會發生其一
        4. 任務被取消時 dispatch rejected 後再傳遞 CancelledError

    屬性:
        type_prefix: 基礎類型字串，例如 "counter/fetchCount"
        pending / fulfilled / rejected: 三個生命週期 action 的創建器
        types: 三個 action 類型
    """

    def __init__(self, type_prefix: str, payload_creator: Callable[..., Any]) -> None:
        if not callable(payload_creator):
            raise TypeError("payload_creator must be callable")
        self.type_prefix = type_prefix
        self.types = AsyncActionTypes(
            f"{type_prefix}/pending", f"{type_prefix}/fulfilled", f"{type_prefix}/rejected"
        )
        self._payload_creator = payload_creator
        self._pass_thunk_api = _accepts_thunk_api(payload_creator)
        # 仍在執行的任務，保持強參考直到完成
        self._tasks: Set["asyncio.Task[Action[Any]]"] = set()

        self.pending = _with_type(self._make_pending, self.types.pending)
        self.fulfilled = _with_type(self._make_fulfilled, self.types.fulfilled)
        self.rejected = _with_type(self._make_rejected, self.types.rejected)

    def _make_pending(self, request_id: Optional[str] = None, arg: Any = None) -> Action[Any]:
        return Action(self.types.pending, None, _meta(request_id, arg, "pending"))

    def _make_fulfilled(self, payload: Any, request_id: Optional[str] = None, arg: Any = None) -> Action[Any]:
        return Action(self.types.fulfilled, _process_payload(payload), _meta(request_id, arg, "fulfilled"))

    def _make_rejected(self, error: Any, request_id: Optional[str] = None, arg: Any = None,
                       payload: Any = _UNSET) -> Action[Any]:
        serialized = miniserialize_error(error)
        if payload is _UNSET:
            return Action(self.types.rejected, serialized, _meta(request_id, arg, "rejected"), serialized)
        return Action(
            self.types.rejected,
            _process_payload(payload),
            _meta(request_id, arg, "rejected", rejected_with_value=True),
            serialized,
        )

    def __call__(self, arg: Any = None) -> Thunk:
        def run(dispatch: DispatchFunction, get_state: GetState) -> Awaitable[Action[Any]]:
            # 每次 dispatch 都是一個新的請求
            request_id = uuid.uuid4().hex
            dispatch(self.pending(request_id, arg))

            thunk_api = ThunkApi(dispatch, get_state, request_id, arg)
            started: Any = None
            failure: Optional[BaseException] = None
            try:
                if self._pass_thunk_api:
                    started = self._payload_creator(arg, thunk_api)
                else:
                    started = self._payload_creator(arg)
            except Exception as err:
                failure = err

            operation = self._settle(dispatch, arg, request_id, started, failure)
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                # 沒有執行中的事件迴圈：由呼叫端 await 或 asyncio.run
                return operation
            # 立即執行到第一個真正的暫停點，payload_creator 的同步部分在 dispatch 返回前完成
            task = asyncio.eager_task_factory(loop, operation)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)
            return task

        return Thunk(run, self.type_prefix)

    async def _settle(self, dispatch: DispatchFunction, arg: Any, request_id: str,
                      started: Any, failure: Optional[BaseException]) -> Action[Any]:
        try:
            if failure is not None:
                raise failure
            result = await started if inspect.isawaitable(started) else started
        except RejectWithValue as rejection:
            final_action = self.rejected(rejection, request_id, arg, payload=rejection.value)
        except asyncio.CancelledError as err:
            logger.debug("Async operation %s cancelled", self.type_prefix)
            dispatch(self.rejected(err, request_id, arg))
            raise
        except Exception as err:
            logger.debug("Async operation %s rejected: %r", self.type_prefix, err)
            final_action = self.rejected(err, request_id, arg)
        else:
            if isinstance(result, RejectWithValue):
                final_action = self.rejected(result, request_id, arg, payload=result.value)
            else:
                final_action = self.fulfilled(result, request_id, arg)

        dispatch(final_action)
        return final_action

    def _task_done(self, task: "asyncio.Task[Action[Any]]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            # 標記為已取得並回報
            global_error_handler.handle(error)

    def __repr__(self) -> str:
        return f"AsyncThunk('{self.type_prefix}')"


def create_async_thunk(type_prefix: str, payload_creator: Callable[..., Any]) -> AsyncThunk:
    """
    創建非同步 action。

    Args:
        type_prefix: 基礎類型字串，例如 "counter/fetchCount"
        payload_creator: 接收 arg (以及可選的 ThunkApi) 並返回值或 awaitable 的函數

    Returns:
        AsyncThunk 實例
    """
    return AsyncThunk(type_prefix, payload_creator)


create_async_action = create_async_thunk


def unwrap_result(action: Action[Any]) -> Any:
    """
    從非同步 thunk 的最終 action 取出結果。

    Returns:
        fulfilled action 的 payload

    Raises:
        AsyncOperationError: action 是 rejected
    """
    status = action.meta.get("request_status") if action.meta is not None else None
    if status == "rejected" or (status is None and action.type.endswith("/rejected")):
        error = action.error if isinstance(action.error, SerializedError) else miniserialize_error(action.payload)
        raise AsyncOperationError(error, action_type=action.type, payload=action.payload)
    return action.payload
