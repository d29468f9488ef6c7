"""
PyStoreKit 的中介軟體定義模組。

此模組提供各種中介軟體，用於在動作分發過程中插入自定義邏輯。
支援兩種形式:
    - 函數式: middleware(store)(next_dispatch)(action)
    - 物件式: 繼承 BaseMiddleware 並實作 on_next / on_complete / on_error 鉤子
"""

import contextlib
import logging
import math
import time
from typing import Any, Generator, Iterable, List, Optional, Union

from immutables import Map
from pydantic import BaseModel

from .actions import Action
from .config import StoreOptions, resolve_options
from .errors import ImmutabilityError
from .immutable_utils import find_mutable, to_dict
from .thunks import Thunk
from .types import (
    ActionContext, DispatchFunction, MiddlewareFunction, NextDispatch, StoreLike,
    Middleware as MiddlewareProtocol
)

logger = logging.getLogger(__name__)


def _describe(action: Any) -> str:
    if isinstance(action, Thunk):
        return f"thunk {action.name}"
    return getattr(action, "type", repr(action))


# ———— Base Middleware ————
class BaseMiddleware:
    """
    基礎中介類，定義所有中介可能實現的鉤子。

    中介軟體可以介入動作分發的流程，在動作到達 Reducer 前、
    動作處理完成後或出現錯誤時執行自定義邏輯。
    """

    def on_next(self, action: Any, prev_state: Any) -> None:
        """
        在 action 發送給 reducer 之前調用。

        Args:
            action: 正在 dispatch 的 Action
            prev_state: dispatch 之前的 store 狀態
        """
        pass

    def on_complete(self, next_state: Any, action: Any) -> None:
        """
        在 reducer 處理完 action 之後調用。

        Args:
            next_state: dispatch 之後的最新狀態
            action: 剛剛 dispatch 的 Action
        """
        pass

    def on_error(self, error: Exception, action: Any) -> None:
        """
        如果 dispatch 過程中拋出異常，則調用此鉤子。

        Args:
            error: 拋出的異常
            action: 導致異常的 Action
        """
        pass

    def teardown(self) -> None:
        """當 Store 清理資源時調用。"""
        pass

    @contextlib.contextmanager
    def action_context(self, action: Any, prev_state: Any) -> Generator[ActionContext, None, None]:
        """
        以上下文管理器包裝一次 dispatch 的生命週期。

        Store 會在 with 區塊內呼叫下一層 dispatch，並把結果寫入 context['next_state']；
        區塊正常結束時呼叫 on_complete，拋出異常時呼叫 on_error 後重新拋出。

        Args:
            action: 要分發的 Action
            prev_state: 分發前的狀態

        Yields:
            包含上下文數據的字典
        """
        context: ActionContext = {
            'action': action,
            'prev_state': prev_state,
            'next_state': None,
            'result': None,
            'error': None
        }

        self.on_next(action, prev_state)
        try:
            yield context
        except Exception as err:
            context['error'] = err
            self.on_error(err, action)
            raise
        if context['next_state'] is not None:
            self.on_complete(context['next_state'], action)


# ———— ThunkMiddleware ————
class ThunkMiddleware(BaseMiddleware, MiddlewareProtocol):
    """
    執行 dispatch 進來的 Thunk，而不把它送到 reducer。

    Thunk 會收到 store.dispatch (完整的中介軟體鏈) 與 store.get_state，
    因此可以多次 dispatch，或 dispatch 其他 thunk。
    其返回值 (可能是 coroutine 或 Task) 就是 dispatch 的返回值。

    範例:
        ```python
        def increment_if_odd(amount):
            def run(dispatch, get_state):
                if get_state()["counter"]["value"] % 2 == 1:
                    dispatch(increment_by_amount(amount))
            return run

        store.dispatch(increment_if_odd(10))
        ```
    """

    def __call__(self, store: StoreLike) -> MiddlewareFunction:
        def middleware(next_dispatch: NextDispatch) -> DispatchFunction:
            def dispatch(action: Union[Thunk, Action[Any]]) -> Any:
                if isinstance(action, Thunk):
                    return action(store.dispatch, store.get_state)
                return next_dispatch(action)
            return dispatch
        return middleware


# ———— LoggerMiddleware ————
class LoggerMiddleware(BaseMiddleware):
    """
    日誌中介，記錄每個 action 發送前和發送後的 state 以及耗時。

    使用場景:
    - 偵錯時需要觀察每次 state 的變化。
    - 確保 action 的執行順序正確。
    """

    def __init__(self, level: int = logging.DEBUG, log: Optional[logging.Logger] = None) -> None:
        self.level = level
        self.log = log or logger

    @contextlib.contextmanager
    def action_context(self, action: Any, prev_state: Any) -> Generator[ActionContext, None, None]:
        started = time.perf_counter()
        with super().action_context(action, prev_state) as context:
            context['timestamp'] = started
            yield context
        self.log.log(self.level, "%s took %.2fms", _describe(action), (time.perf_counter() - started) * 1000)

    def on_next(self, action: Any, prev_state: Any) -> None:
        self.log.log(self.level, "dispatching %s", _describe(action))
        self.log.log(self.level, "state before %s: %s", _describe(action), to_dict(prev_state))

    def on_complete(self, next_state: Any, action: Any) -> None:
        self.log.log(self.level, "state after %s: %s", _describe(action), to_dict(next_state))

    def on_error(self, error: Exception, action: Any) -> None:
        self.log.error("error in %s: %s", _describe(action), error)


# ———— ImmutableCheckMiddleware ————
class ImmutableCheckMiddleware(BaseMiddleware):
    """
    在每次 dispatch 完成後檢查狀態樹，發現 dict / list / set 等可變容器時拋出 ImmutabilityError。

    使用場景:
    - 開發時確保 reducer 沒有把可變物件放進狀態樹。
    """

    def on_complete(self, next_state: Any, action: Any) -> None:
        found = find_mutable(next_state)
        if found:
            path, value = found
            raise ImmutabilityError(
                f"Mutable {type(value).__name__} found in state at '{path}' after {_describe(action)}",
                path=path,
                value_type=type(value).__name__,
            )


def _is_serializable(value: Any) -> bool:
    if value is None or isinstance(value, (str, bool, int)):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, BaseModel):
        return True
    if isinstance(value, (Map, dict)):
        return all(isinstance(k, str) and _is_serializable(v) for k, v in value.items())
    if isinstance(value, (tuple, list)):
        return all(_is_serializable(v) for v in value)
    return False


# ———— SerializableCheckMiddleware ————
class SerializableCheckMiddleware(BaseMiddleware):
    """
    對無法轉為 JSON 的 action 負載或狀態發出警告。

    Args:
        ignored_actions: 不檢查的 action 類型
    """

    def __init__(self, ignored_actions: Iterable[str] = ()) -> None:
        self.ignored_actions = frozenset(ignored_actions)
        self.warnings: List[str] = []

    def _warn(self, message: str, *args: Any) -> None:
        self.warnings.append(message % args)
        logger.warning(message, *args)

    def on_next(self, action: Any, prev_state: Any) -> None:
        if not isinstance(action, Action) or action.type in self.ignored_actions:
            return
        if not _is_serializable(action.payload):
            self._warn("Non-serializable payload in action %s: %r", action.type, action.payload)

    def on_complete(self, next_state: Any, action: Any) -> None:
        if getattr(action, "type", None) in self.ignored_actions:
            return
        if not _is_serializable(next_state):
            self._warn("Non-serializable value in state after %s", _describe(action))


def get_default_middleware(options: Optional[Union[StoreOptions, dict]] = None) -> List[Any]:
    """
    依選項返回預設的中介軟體列表。ThunkMiddleware 永遠在最外層。

    Args:
        options: StoreOptions 或其字典形式

    Returns:
        中介軟體實例列表
    """
    options = resolve_options(options)
    middleware: List[Any] = []
    if options.thunk:
        middleware.append(ThunkMiddleware())
    if options.log_actions:
        middleware.append(LoggerMiddleware(level=options.log_level_no))
    if options.immutable_check:
        middleware.append(ImmutableCheckMiddleware())
    if options.serializable_check:
        middleware.append(SerializableCheckMiddleware(options.ignored_serializable_actions))
    return middleware
