"""
PyStoreKit 共用型別定義模組。

集中定義 reducer、dispatch、middleware、thunk 與 selector 所使用的型別別名與協定，
供其他模組引用，避免循環匯入。
"""
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar, Union

from typing_extensions import Protocol, TypedDict

S = TypeVar("S")  # 狀態類型
P = TypeVar("P")  # 負載類型
T = TypeVar("T")  # 回傳類型
R = TypeVar("R")  # selector 結果類型
Input = TypeVar("Input")
Output = TypeVar("Output")

# (state, action) -> new_state
Reducer = Callable[[Optional[S], Any], S]
# (draft, action) -> None | new_state
CaseReducer = Callable[[Any, Any], Any]
# action -> bool
ActionMatcher = Callable[[Any], bool]

GetState = Callable[[], Any]
DispatchFunction = Callable[[Any], Any]
NextDispatch = Callable[[Any], Any]
MiddlewareFunction = Callable[[NextDispatch], DispatchFunction]

Listener = Callable[[], None]
Unsubscribe = Callable[[], None]

ThunkFunction = Callable[[DispatchFunction, GetState], Union[T, Awaitable[T]]]

StateSelector = Callable[[Input], Output]
ResultSelector = Callable[..., R]


class ActionCreator(Protocol):
    """可呼叫並帶有 type 屬性的 Action 生成器。"""

    type: str

    def __call__(self, *args: Any, **kwargs: Any) -> Any: ...

    def match(self, action: Any) -> bool: ...


class StoreLike(Protocol):
    """middleware 所看到的 store 介面。"""

    def dispatch(self, action: Any) -> Any: ...

    def get_state(self) -> Any: ...


class Middleware(Protocol):
    """函數式中介軟體協定：store -> next -> action -> result。"""

    def __call__(self, store: StoreLike) -> MiddlewareFunction: ...


class ActionContext(TypedDict, total=False):
    """物件型中介軟體在 action_context 中共享的上下文資料。"""

    action: Any
    prev_state: Any
    next_state: Any
    result: Any
    error: Optional[Exception]
    timestamp: Any
    extra: Dict[str, Any]
