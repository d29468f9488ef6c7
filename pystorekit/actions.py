"""
PyStoreKit 的 Action 定義模組。

此模組提供 Action 類別以及創建 Action 的功能。
Actions 是描述狀態變更意圖的不可變對象，本身永遠不會被執行。
"""
from typing import Any, Callable, Dict, Generic, Mapping, Optional, Union, overload

from immutables import Map

from .errors import ActionError
from .types import P, ActionCreator


class Action(Generic[P]):
    """
    表示一個有類型和可選負載的動作。

    泛型參數:
        P: 負載的類型

    屬性:
        type: 動作的類型字符串，慣例為 "<slice 名稱>/<transition 名稱>"
        payload: 動作的負載數據（可選）
        meta: 附加資訊，例如非同步 action 的 request_id（可選）
        error: rejected action 的 SerializedError（可選）
    """
    __slots__ = ('type', 'payload', 'meta', 'error')

    def __init__(self, type: str, payload: Optional[P] = None, meta: Optional[Mapping[str, Any]] = None,
                 error: Any = None):
        super().__setattr__('type', type)
        super().__setattr__('payload', payload)
        super().__setattr__('meta', Map(meta) if isinstance(meta, dict) else meta)
        super().__setattr__('error', error)

    def __setattr__(self, name, value):
        if name not in self.__slots__:
            raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")
        raise AttributeError(f"Cannot modify immutable instance attribute '{name}'")

    def __delattr__(self, name):
        raise AttributeError(f"Cannot delete immutable instance attribute '{name}'")

    def __eq__(self, other):
        if not isinstance(other, Action):
            return False
        return (self.type == other.type and self.payload == other.payload
                and self.meta == other.meta and self.error == other.error)

    def __hash__(self):
        try:
            return hash((self.type, self.payload))
        except TypeError:
            # 負載不可哈希時只以 type 計算
            return hash(self.type)

    def __repr__(self):
        parts = [f"type='{self.type}'", f"payload={self.payload!r}"]
        if self.meta is not None:
            parts.append(f"meta={self.meta!r}")
        if self.error is not None:
            parts.append(f"error={self.error!r}")
        return f"Action({', '.join(parts)})"


def _process_payload(payload: Any) -> Any:
    """
    處理 payload，將字典轉換為不可變結構。

    Args:
        payload: 原始 payload

    Returns:
        處理後的 payload
    """
    if isinstance(payload, dict):
        return Map(payload)
    return payload


@overload
def create_action(action_type: str) -> ActionCreator:
    ...


@overload
def create_action(action_type: str, prepare_fn: Callable[..., Any]) -> ActionCreator:
    ...


def create_action(action_type: str, prepare_fn: Optional[Callable[..., Any]] = None) -> ActionCreator:
    """
    創建一個 Action 生成器函數。

    Args:
        action_type: Action 的類型標識符
        prepare_fn: 可選的預處理函數，用於在創建 Action 前處理輸入參數

    Returns:
        一個可調用的函數，用於生成指定類型的 Action。
        函數帶有 `type` 屬性與 `match(action)` 方法。

    範例:
        >>> increment = create_action("counter/increment")
        >>> increment()  # 返回 Action(type='counter/increment', payload=None)
        >>>
        >>> add = create_action("counter/add", lambda amount: amount)
        >>> add(5)  # 返回 Action(type='counter/add', payload=5)
    """
    def action_creator(*args: Any, **kwargs: Any) -> Action[Any]:
        if prepare_fn:
            payload = prepare_fn(*args, **kwargs)
            return Action(action_type, _process_payload(payload))
        elif len(args) == 1 and not kwargs:
            return Action(action_type, _process_payload(args[0]))
        elif args or kwargs:
            payload: Dict[Union[int, str], Any] = dict(zip(range(len(args)), args))
            payload.update(kwargs)
            return Action(action_type, _process_payload(payload))

        # 無參數，無負載
        return Action(action_type)

    def match(action: Any) -> bool:
        return isinstance(action, Action) and action.type == action_type

    # 添加 type 屬性以便於識別
    action_creator.type = action_type  # type: ignore
    action_creator.match = match  # type: ignore
    action_creator.__name__ = action_type.rsplit("/", 1)[-1]
    action_creator.__qualname__ = action_creator.__name__

    return action_creator  # type: ignore


def get_action_type(action_creator_or_type: Any) -> str:
    """
    取得 action 類型字串。

    Args:
        action_creator_or_type: Action 創建器 (或任何帶 type 屬性的物件) 或類型字串

    Returns:
        類型字串
    """
    if isinstance(action_creator_or_type, str):
        return action_creator_or_type
    action_type = getattr(action_creator_or_type, "type", None)
    if isinstance(action_type, str):
        return action_type
    raise ActionError(f"Cannot derive an action type from {action_creator_or_type!r}")


def coerce_action(value: Any) -> Action[Any]:
    """
    將 dispatch 進來的 plain action 正規化為 Action。

    支援 Action 實例，以及 {"type": ..., "payload": ...} 形式的映射。

    Raises:
        ActionError: 值不是合法的 action
    """
    if isinstance(value, Action):
        return value
    if isinstance(value, Mapping):
        action_type = value.get("type")
        if not isinstance(action_type, str):
            raise ActionError("Actions must have a string 'type' field", action_type=repr(action_type))
        unknown = set(value) - {"type", "payload", "meta", "error"}
        if unknown:
            raise ActionError("Unexpected action fields", action_type=action_type, fields=sorted(unknown))
        return Action(action_type, _process_payload(value.get("payload")), value.get("meta"), value.get("error"))
    raise ActionError(f"Expected an action or a thunk, got {type(value).__name__}")


# 根 Action：Store 建立時用來計算初始狀態
init_store = create_action("@@pystorekit/INIT")
