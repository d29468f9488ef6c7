import inspect
import logging
import threading
from typing import Any, Callable, Generic, List, Mapping, Optional, Sequence, Tuple, Union

from reactivex import Observable, Subject, operators as ops

from .actions import Action, coerce_action, init_store
from .config import StoreOptions, resolve_options
from .errors import ActionError, ConfigurationError, ReentrancyError, global_error_handler
from .immutable_utils import to_immutable
from .middleware import get_default_middleware
from .reducers import combine_reducers
from .thunks import Thunk, as_thunk
from .types import Listener, Reducer, S, Unsubscribe

logger = logging.getLogger(__name__)


class Store(Generic[S]):
    """
    狀態容器，持有唯一的不可變狀態樹，並在每次 action 處理完成後通知訂閱者。

    dispatch 是唯一能改變狀態的入口；plain action 的 reduce 與通知期間
    不允許再次 dispatch plain action (由 thunk 發出的 dispatch 則不受限)。
    """

    def __init__(self, reducer: Reducer[S], middleware: Sequence[Any] = (), preloaded_state: Any = None):
        """
        Args:
            reducer: root reducer
            middleware: 中介軟體列表，可以是類或實例，由外到內排列
            preloaded_state: 可選的初始 root 狀態
        """
        if not callable(reducer):
            raise ConfigurationError("Store reducer must be callable", component="store")
        self._reducer = reducer
        # 監聽者列表採用 copy-on-write，通知時直接取快照
        self._listeners: List[Tuple[object, Listener]] = []
        self._is_dispatching = False
        self._dispatch_lock = threading.RLock()
        # 初始化動作流與狀態流（Subject）
        self._action_subject = Subject()
        self._state_subject = Subject()

        initial = to_immutable(preloaded_state) if preloaded_state is not None else None
        self._state = self._reducer(initial, init_store())

        # 接受類和實例，如果是類則直接實例化
        self._middleware = [m() if inspect.isclass(m) else m for m in middleware]
        self._dispatch_chain: Callable[[Any], Any] = self._dispatch_during_setup
        self._dispatch_chain = self._apply_middleware_chain()

    @staticmethod
    def _dispatch_during_setup(action: Any) -> Any:
        raise ConfigurationError(
            "Dispatching while constructing middleware is not allowed", component="middleware"
        )

    def _apply_middleware_chain(self) -> Callable[[Any], Any]:
        """
        構建中介軟體鏈，由右到左包裹，最內層是驅動 reducer 的原始 dispatch。

        Returns:
            包裹後的 dispatch 方法。
        """
        dispatch = self._raw_dispatch
        for mw in reversed(self._middleware):
            if callable(mw):
                # 函數式中介軟體: mw(store)(next)
                dispatch = mw(self)(dispatch)
            elif hasattr(mw, "on_next"):
                dispatch = self._wrap_obj_middleware(mw, dispatch)
            else:
                raise ConfigurationError(f"Unsupported middleware {mw!r}", component="middleware")
        return dispatch

    def _wrap_obj_middleware(self, mw: Any, next_dispatch: Callable[[Any], Any]) -> Callable[[Any], Any]:
        """
        包裹物件型中介軟體。

        Args:
            mw: 中介軟體物件，需實現 on_next、on_complete 和 on_error 方法，
                或提供 action_context 上下文管理器。
            next_dispatch: 下一層的 dispatch 方法。

        Returns:
            包裹後的 dispatch 方法。
        """
        action_context = getattr(mw, "action_context", None)

        def dispatch(action: Any) -> Any:
            if action_context is not None:
                with action_context(action, self._state) as context:
                    result = next_dispatch(action)
                    context['result'] = result
                    context['next_state'] = self._state
                    return result

            mw.on_next(action, self._state)
            try:
                result = next_dispatch(action)
            except Exception as err:
                mw.on_error(err, action)
                raise
            mw.on_complete(self._state, action)
            return result

        return dispatch

    def _raw_dispatch(self, action: Any) -> None:
        """
        核心的 dispatch：執行 reducer、交換狀態參考並通知訂閱者。

        reducer 拋出異常時狀態保持不變，也不會通知訂閱者。
        """
        if not isinstance(action, Action):
            raise ActionError(
                f"{action!r} reached the reducer; thunks require ThunkMiddleware",
                action_type=getattr(action, "name", None),
            )

        with self._dispatch_lock:
            if self._is_dispatching:
                raise ReentrancyError(
                    "Reducers and listeners may not dispatch actions", action_type=action.type
                )
            self._is_dispatching = True
            try:
                try:
                    new_state = self._reducer(self._state, action)
                except Exception as err:
                    global_error_handler.handle(err, action)
                    raise
                old_state = self._state
                # 單一參考交換，讀取端永遠看到完整的新舊狀態之一
                self._state = new_state
                self._notify(action, old_state, new_state)
            finally:
                self._is_dispatching = False
        return None

    def _notify(self, action: Action[Any], old_state: Any, new_state: Any) -> None:
        """
        依註冊順序通知所有監聽者，再推送到動作流與狀態流。

        某個監聽者拋出異常不會影響其他監聽者；第一個異常會在全部通知完成後重新拋出。
        """
        first_error: Optional[Exception] = None
        emitters: List[Callable[[], None]] = [listener for _, listener in self._listeners]
        emitters.append(lambda: self._action_subject.on_next(action))
        emitters.append(lambda: self._state_subject.on_next((old_state, new_state)))

        for emit in emitters:
            try:
                emit()
            except Exception as err:
                global_error_handler.handle(err, action)
                if first_error is None:
                    first_error = err
        if first_error is not None:
            raise first_error

    def dispatch(self, action: Union[Action[Any], Thunk, Mapping[str, Any], Callable[..., Any]]) -> Any:
        """
        分發一個 action 或 thunk。

        Args:
            action: Action、{"type": ...} 形式的映射、Thunk 或 (dispatch, get_state) 函數。

        Returns:
            plain action 返回 None；thunk 返回其執行結果。

        Raises:
            ActionError: 無法識別的值
            ReentrancyError: 在 reduce 或通知期間 dispatch plain action
            ReducerExecutionError: reducer 執行失敗 (狀態不變)
        """
        if isinstance(action, (Action, Thunk)):
            value = action
        elif callable(action):
            value = as_thunk(action)
        else:
            value = coerce_action(action)
        return self._dispatch_chain(value)

    def get_state(self) -> S:
        """
        獲取當前狀態。O(1)，不會阻塞。

        Returns:
            當前 root 狀態。
        """
        return self._state

    @property
    def state(self) -> S:
        return self._state

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """
        註冊一個無參數監聽者，在每個 plain action 成功 reduce 後被呼叫。

        Args:
            listener: 無參數函數

        Returns:
            取消訂閱的函數；重複呼叫不會有任何效果。
        """
        if not callable(listener):
            raise TypeError(f"Expected the listener to be callable, got {type(listener).__name__}")
        token = object()
        self._listeners = self._listeners + [(token, listener)]
        subscribed = True

        def unsubscribe() -> None:
            nonlocal subscribed
            if not subscribed:
                return
            subscribed = False
            self._listeners = [(t, fn) for t, fn in self._listeners if t is not token]

        return unsubscribe

    def select(self, selector: Optional[Callable[[S], Any]] = None) -> Observable:
        """
        選擇狀態的一部分進行觀察。

        Args:
            selector: 一個函數，接收整個狀態並返回希望觀察的部分；省略時觀察整個狀態。

        Returns:
            一個可觀察對象，發送 (舊值, 新值) 元組，只在新值變化時發出。
        """
        if selector is None:
            return self._state_subject.pipe(ops.distinct_until_changed(lambda x: x[1]))

        return self._state_subject.pipe(
            # 將元組 (old_state, new_state) 轉換為 (selector(old_state), selector(new_state))
            ops.map(
                lambda state_tuple: (selector(state_tuple[0]), selector(state_tuple[1]))
            ),
            # 只有當新狀態變化時才發出
            ops.distinct_until_changed(lambda x: x[1]),
        )

    @property
    def action_stream(self) -> Observable:
        """每個成功 reduce 的 action 都會在這個流上發出。"""
        return self._action_subject.pipe(ops.as_observable())

    def teardown(self) -> None:
        """
        清理資源：完成動作流與狀態流、清理中介軟體並移除所有監聽者。
        """
        for mw in self._middleware:
            teardown = getattr(mw, "teardown", None)
            if callable(teardown):
                teardown()
        self._listeners = []
        self._action_subject.on_completed()
        self._state_subject.on_completed()

    def __enter__(self) -> "Store[S]":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.teardown()

    def __repr__(self) -> str:
        return f"Store(state={self._state!r})"


def create_store(reducer: Reducer[S], middleware: Sequence[Any] = (), preloaded_state: Any = None) -> Store[S]:
    """
    創建一個新的 Store 實例。

    Args:
        reducer: root reducer (例如 combine_reducers 的結果)
        middleware: 有序的中介軟體列表
        preloaded_state: 可選的初始狀態

    Returns:
        Store: 新創建的 Store 實例。
    """
    return Store(reducer, middleware, preloaded_state)


def configure_store(
    reducer: Any,
    middleware: Any = None,
    preloaded_state: Any = None,
    options: Optional[Union[StoreOptions, Mapping[str, Any]]] = None,
) -> Store[Any]:
    """
    以合理的預設值建立 Store。

    Args:
        reducer: root reducer、鍵到 reducer 的映射、Slice，或 Slice 序列 (會自動組合)
        middleware: 中介軟體序列；或接收 get_default_middleware 的回調函數；
            省略時使用 get_default_middleware(options)
        preloaded_state: 可選的初始狀態
        options: StoreOptions 或其字典形式

    Returns:
        Store 實例

    範例:
        >>> store = configure_store({"counter": counter_slice.reducer})
        >>> store = configure_store(
        ...     [counter_slice],
        ...     middleware=lambda get_default: get_default() + [LoggerMiddleware()],
        ... )
    """
    resolved = resolve_options(options)

    if isinstance(reducer, (Mapping, list, tuple)):
        root_reducer = combine_reducers(reducer)
    elif hasattr(reducer, "name") and hasattr(reducer, "reducer"):
        root_reducer = combine_reducers([reducer])
    elif callable(reducer):
        root_reducer = reducer
    else:
        raise ConfigurationError(f"Cannot build a store from {reducer!r}", component="configure_store")

    def get_default(**overrides: Any) -> List[Any]:
        return get_default_middleware(resolved.model_copy(update=overrides) if overrides else resolved)

    if middleware is None:
        middleware_list = get_default()
    elif isinstance(middleware, (list, tuple)):
        middleware_list = list(middleware)
    elif callable(middleware):
        middleware_list = list(middleware(get_default))
    else:
        raise ConfigurationError("middleware must be a sequence or a callback", component="configure_store")

    logger.debug("Configuring store with middleware %s", [type(m).__name__ for m in middleware_list])
    return Store(root_reducer, middleware_list, preloaded_state)
