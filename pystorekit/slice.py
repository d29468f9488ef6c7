"""
PyStoreKit 的 Slice 模組。

一個 slice 把某個功能的初始狀態、transition (case reducer) 與自動生成的
action 創建器集中在一起。action 類型為 "<slice 名稱>/<transition 名稱>"。
"""
from types import SimpleNamespace
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from .actions import create_action
from .errors import ConfigurationError
from .reducers import ActionReducerMapBuilder, adapt_case_reducer, build_reducer
from .types import CaseReducer


def _iter_transitions(reducers: Any, component: str) -> Iterable[Tuple[str, Any]]:
    if isinstance(reducers, Mapping):
        return list(reducers.items())
    try:
        pairs = [tuple(item) for item in reducers]
    except TypeError:
        raise ConfigurationError(
            "reducers must be a mapping or an iterable of (name, case_reducer) pairs", component=component
        ) from None
    if any(len(pair) != 2 for pair in pairs):
        raise ConfigurationError("reducers must contain (name, case_reducer) pairs", component=component)
    return pairs


class Slice:
    """
    由 create_slice 產生的 slice。

    Attributes:
        name: slice 名稱，也是它在 root state 中的鍵
        actions: 每個 transition 對應的 action 創建器，例如 `slice.actions.increment`
        action_types: transition 名稱到 action 類型的映射
        case_reducers: transition 名稱到 (draft, action) 處理函數的映射
        reducer: slice reducer，`reducer(None, action)` 會從初始狀態開始
        selectors: 接收 root state 的 selector
    """

    def __init__(
        self,
        name: str,
        initial_state: Any,
        reducers: Any,
        extra_reducers: Any = None,
        selectors: Optional[Mapping[str, Callable[..., Any]]] = None,
    ) -> None:
        if not isinstance(name, str) or not name:
            raise ConfigurationError("Slice name must be a non-empty string", component="create_slice")
        component = f"slice '{name}'"
        self.name = name

        own_cases: Dict[str, CaseReducer] = {}
        actions: Dict[str, Callable[..., Any]] = {}
        self.case_reducers: Dict[str, CaseReducer] = {}
        self.action_types: Dict[str, str] = {}

        for transition, definition in _iter_transitions(reducers, component):
            if transition in actions:
                raise ConfigurationError(
                    f"Duplicate transition '{transition}' in slice '{name}'",
                    component=component,
                    config_key=transition,
                )
            prepare_fn = None
            if isinstance(definition, tuple):
                # (case_reducer, prepare_fn)
                if len(definition) != 2:
                    raise ConfigurationError(
                        "Transitions with a prepare function must be (case_reducer, prepare_fn)",
                        component=component,
                        config_key=transition,
                    )
                definition, prepare_fn = definition
            action_type = f"{name}/{transition}"
            case_reducer = adapt_case_reducer(definition, component)
            actions[transition] = create_action(action_type, prepare_fn)
            own_cases[action_type] = case_reducer
            self.case_reducers[transition] = case_reducer
            self.action_types[transition] = action_type

        builder = ActionReducerMapBuilder(component)
        if extra_reducers is not None:
            if isinstance(extra_reducers, Mapping):
                builder.add_handlers([extra_reducers])
            elif callable(extra_reducers):
                extra_reducers(builder)
            else:
                raise ConfigurationError(
                    "extra_reducers must be a mapping or a builder callback", component=component
                )

        # 自身的 transition 優先於 extra_reducers
        cases = dict(builder.cases)
        cases.update(own_cases)
        self.reducer = build_reducer(name, initial_state, cases, builder.matchers, builder.default_case)
        self.actions = SimpleNamespace(**actions)

        self._selector_fns = dict(selectors or {})
        self.selectors = self.get_selectors(self.select_slice_state)

    def get_initial_state(self) -> Any:
        return self.reducer.get_initial_state()

    def select_slice_state(self, root_state: Any) -> Any:
        """從 root state 取出本 slice 的狀態；鍵不存在時返回初始狀態。"""
        state = root_state.get(self.name) if root_state is not None else None
        return self.get_initial_state() if state is None else state

    def get_selectors(self, select_state: Optional[Callable[[Any], Any]] = None) -> SimpleNamespace:
        """
        返回包裝後的 selector。

        Args:
            select_state: 從輸入取出 slice 狀態的函數；省略時 selector 直接接收 slice 狀態

        Returns:
            以 selector 名稱為屬性的命名空間
        """
        wrapped = {}
        for selector_name, selector in self._selector_fns.items():
            wrapped[selector_name] = self._wrap_selector(selector, select_state)
        return SimpleNamespace(**wrapped)

    @staticmethod
    def _wrap_selector(selector: Callable[..., Any], select_state: Optional[Callable[[Any], Any]]) -> Callable[..., Any]:
        if select_state is None:
            return selector

        def bound(state: Any, *args: Any) -> Any:
            return selector(select_state(state), *args)

        bound.__name__ = getattr(selector, "__name__", "selector")
        bound.unwrapped = selector  # type: ignore
        return bound

    def __repr__(self) -> str:
        return f"Slice(name='{self.name}', transitions={list(self.action_types)})"


def create_slice(
    name: str,
    initial_state: Any,
    reducers: Any,
    extra_reducers: Any = None,
    selectors: Optional[Mapping[str, Callable[..., Any]]] = None,
) -> Slice:
    """
    創建一個 slice。

    Args:
        name: slice 名稱，同一個 store 中必須唯一
        initial_state: 初始狀態，或返回初始狀態的無參數函數
        reducers: transition 名稱到 case reducer 的映射 (或 (name, case_reducer) 序列)；
            值也可以是 (case_reducer, prepare_fn) 元組
        extra_reducers: 處理外部 action (其他 slice 或非同步生命週期) 的映射或 builder 回調
        selectors: selector 名稱到 fn(slice_state, *args) 的映射

    Returns:
        Slice 實例

    範例:
        >>> counter = create_slice(
        ...     "counter",
        ...     {"value": 0, "status": "idle"},
        ...     {
        ...         "increment": lambda state: state.update(value=state["value"] + 1),
        ...         "increment_by_amount": lambda state, action: state.update(
        ...             value=state["value"] + action.payload),
        ...     },
        ... )
        >>> counter.actions.increment()
        Action(type='counter/increment', payload=None)
    """
    return Slice(name, initial_state, reducers, extra_reducers, selectors)
