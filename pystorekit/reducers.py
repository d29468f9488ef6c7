import inspect
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from immutables import Map

from .actions import Action, get_action_type, init_store
from .draft import apply_draft_update
from .errors import ConfigurationError, ReducerExecutionError, ReentrancyError
from .immutable_utils import to_immutable
from .types import ActionMatcher, CaseReducer, Reducer, S

logger = logging.getLogger(__name__)


def adapt_case_reducer(case_reducer: Callable[..., Any], component: str = "reducer") -> CaseReducer:
    """
    將 case reducer 正規化為 (draft, action) 形式。

    只接收一個參數 (draft) 的函數會被包裝，使其仍能以 (draft, action) 呼叫。
    參數數量只在建構時檢查一次，不是 dispatch 的前提條件。

    Args:
        case_reducer: 使用者提供的處理函數
        component: 發生錯誤時回報的元件名稱

    Returns:
        接收 (draft, action) 的處理函數
    """
    if not callable(case_reducer):
        raise ConfigurationError(f"Case reducer must be callable, got {case_reducer!r}", component=component)
    try:
        signature = inspect.signature(case_reducer)
    except (TypeError, ValueError):
        return case_reducer

    positional = 0
    for param in signature.parameters.values():
        if param.kind == param.VAR_POSITIONAL:
            return case_reducer
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            positional += 1

    if positional >= 2:
        return case_reducer
    if positional == 1:
        def draft_only(draft: Any, action: Any) -> Any:
            return case_reducer(draft)
        draft_only.__name__ = getattr(case_reducer, "__name__", "case_reducer")
        return draft_only
    raise ConfigurationError(
        "Case reducer must accept at least the draft argument",
        component=component,
        config_key=getattr(case_reducer, "__name__", None),
    )


class ActionReducerMapBuilder:
    """
    以鏈式呼叫註冊 action 處理函數，類似 Redux Toolkit 的 builder。

    用法:
        ```python
        def extra(builder):
            (builder
                .add_case(fetch_count.pending, lambda state: state.update(status="loading"))
                .add_matcher(lambda a: a.type.endswith("/rejected"), handle_rejected)
                .add_default_case(lambda state, action: None))
        ```
    """

    def __init__(self, component: str = "reducer") -> None:
        self.component = component
        self.cases: Dict[str, CaseReducer] = {}
        self.matchers: List[Tuple[ActionMatcher, CaseReducer]] = []
        self.default_case: Optional[CaseReducer] = None

    def add_case(self, action_creator_or_type: Any, case_reducer: Callable[..., Any]) -> "ActionReducerMapBuilder":
        action_type = get_action_type(action_creator_or_type)
        if action_type in self.cases:
            raise ConfigurationError(
                "add_case cannot be called with two reducers for the same action type",
                component=self.component,
                config_key=action_type,
            )
        self.cases[action_type] = adapt_case_reducer(case_reducer, self.component)
        return self

    def add_matcher(self, matcher: ActionMatcher, case_reducer: Callable[..., Any]) -> "ActionReducerMapBuilder":
        # 也接受帶有 match 方法的 action 創建器
        predicate = getattr(matcher, "match", matcher)
        if not callable(predicate):
            raise ConfigurationError("Matcher must be callable", component=self.component)
        self.matchers.append((predicate, adapt_case_reducer(case_reducer, self.component)))
        return self

    def add_default_case(self, case_reducer: Callable[..., Any]) -> "ActionReducerMapBuilder":
        if self.default_case is not None:
            raise ConfigurationError("add_default_case can only be called once", component=self.component)
        self.default_case = adapt_case_reducer(case_reducer, self.component)
        return self

    def add_handlers(self, handlers: Iterable[Any]) -> "ActionReducerMapBuilder":
        """
        接受 on() 產生的字典、(action_type, handler) 元組，或 builder 回調函數。
        """
        for handler in handlers:
            if isinstance(handler, tuple) and len(handler) == 2:
                self.add_case(*handler)
            elif isinstance(handler, Mapping):
                for action_type, handler_fn in handler.items():
                    self.add_case(action_type, handler_fn)
            elif callable(handler):
                handler(self)
            else:
                raise ConfigurationError(f"Unsupported reducer handler {handler!r}", component=self.component)
        return self


def run_case_reducer(reducer_name: str, case_reducer: CaseReducer, state: Any, action: Action[Any]) -> Any:
    """
    透過 draft 引擎執行一個 case reducer。

    Raises:
        ReducerExecutionError: case reducer 拋出異常時 (原異常作為 __cause__)
    """
    try:
        return apply_draft_update(state, lambda draft: case_reducer(draft, action))
    except (ReentrancyError, ReducerExecutionError):
        raise
    except Exception as err:
        raise ReducerExecutionError(
            f"Reducer '{reducer_name}' failed while handling '{action.type}': {err}",
            reducer_name=reducer_name,
            action_type=action.type,
        ) from err


def _initial_state_getter(initial_state: Any) -> Callable[[], Any]:
    if callable(initial_state):
        return lambda: to_immutable(initial_state())
    frozen = to_immutable(initial_state)
    return lambda: frozen


def build_reducer(
    name: str,
    initial_state: Any,
    cases: Mapping[str, CaseReducer],
    matchers: Iterable[Tuple[ActionMatcher, CaseReducer]] = (),
    default_case: Optional[CaseReducer] = None,
) -> Reducer[Any]:
    """
    由查找表建立 reducer。查找表在建構時固定，dispatch 成本與 case 數量無關。

    比對順序: 精確的 action 類型 → 所有符合的 matcher → default case。
    沒有任何符合時原樣返回 state (同一個參考)。
    """
    action_handlers = dict(cases)
    matcher_list = list(matchers)
    get_initial_state = _initial_state_getter(initial_state)

    def reducer(state: Any = None, action: Optional[Action[Any]] = None) -> Any:
        if state is None:
            state = get_initial_state()
        if action is None:
            return state

        handler = action_handlers.get(action.type)
        if handler is not None:
            return run_case_reducer(name, handler, state, action)

        matched = False
        for predicate, case_reducer in matcher_list:
            if predicate(action):
                matched = True
                state = run_case_reducer(name, case_reducer, state, action)
        if not matched and default_case is not None:
            state = run_case_reducer(name, default_case, state, action)
        return state

    reducer.get_initial_state = get_initial_state  # type: ignore
    reducer.handlers = action_handlers  # type: ignore
    reducer.__name__ = f"{name}_reducer"
    return reducer


def create_reducer(initial_state: S, *handlers: Any) -> Reducer[S]:
    """
    創建一個 reducer 函式，處理函數透過 draft 引擎執行。

    Args:
        initial_state: 初始狀態，或返回初始狀態的無參數函數。
        *handlers: 一系列 (action_type, handler_fn) 元組、使用 on 函式創建的處理器，
            或接收 ActionReducerMapBuilder 的回調函數。

    Returns:
        一個 reducer 函式，根據 action 的類型執行對應的處理邏輯。
    """
    builder = ActionReducerMapBuilder("create_reducer").add_handlers(handlers)
    return build_reducer("reducer", initial_state, builder.cases, builder.matchers, builder.default_case)


def on(action_creator_or_type: Any, handler: Callable[..., Any]) -> Dict[str, Callable[..., Any]]:
    """
    創建一個 action 類型與處理函式的映射。

    Args:
        action_creator_or_type: Action 創建器函式或 Action 類型字串。
        handler: 處理該 Action 的函式，接收 (draft, action)。

    Returns:
        一個包含 {action_type: handler} 的字典。
    """
    return {get_action_type(action_creator_or_type): handler}


class ReducerManager:
    """
    將多個 slice reducer 組合成一個 root reducer。

    每個 reducer 擁有 root state 的一個鍵；每個 action 都會送到所有 reducer。
    所有子狀態都沒有變化時，直接返回原來的 root state。

    Attributes:
        _feature_reducers: 依註冊順序儲存每個鍵的 reducer。
    """

    def __init__(self, reducers: Any):
        """
        Args:
            reducers: 鍵到 reducer 的映射、Slice 物件序列，或 (key, reducer) 元組序列。

        Raises:
            ConfigurationError: 鍵重複或 reducer 無法呼叫。
        """
        self._feature_reducers: Dict[str, Reducer[Any]] = {}
        for key, reducer in self._iter_reducers(reducers):
            if key in self._feature_reducers:
                raise ConfigurationError(
                    f"Duplicate slice key '{key}'", component="combine_reducers", config_key=key
                )
            if not callable(reducer):
                raise ConfigurationError(
                    f"Reducer for key '{key}' is not callable", component="combine_reducers", config_key=key
                )
            self._feature_reducers[key] = reducer
        logger.debug("Combined reducers for keys %s", list(self._feature_reducers))

    @staticmethod
    def _iter_reducers(reducers: Any) -> Iterable[Tuple[str, Reducer[Any]]]:
        if isinstance(reducers, Mapping):
            return list(reducers.items())
        pairs = []
        for item in reducers:
            if isinstance(item, tuple) and len(item) == 2:
                pairs.append(item)
            elif hasattr(item, "name") and hasattr(item, "reducer"):
                pairs.append((item.name, item.reducer))
            else:
                raise ConfigurationError(f"Cannot combine {item!r}", component="combine_reducers")
        return pairs

    @property
    def keys(self) -> List[str]:
        return list(self._feature_reducers)

    def get_reducers(self) -> Dict[str, Reducer[Any]]:
        """
        獲取當前所有的 reducers。

        Returns:
            一個包含所有鍵與 reducer 的字典副本。
        """
        return self._feature_reducers.copy()

    def get_initial_state(self) -> Map:
        return self(None, init_store())

    def __call__(self, state: Optional[Mapping[str, Any]] = None, action: Optional[Action[Any]] = None) -> Map:
        """
        使用所有註冊的 reducers 處理 action 並返回新狀態。

        Args:
            state: 當前的 root state；None 表示使用各 reducer 的初始狀態。
            action: 要處理的 action。

        Returns:
            新的 root state；沒有任何子狀態變化時為同一個物件。
        """
        if state is None:
            state = Map()
        elif not isinstance(state, Map):
            state = Map(state)

        changed = {}
        for feature_key, reducer in self._feature_reducers.items():
            prev_substate = state.get(feature_key)
            try:
                next_substate = reducer(prev_substate, action)
            except (ReentrancyError, ReducerExecutionError):
                raise
            except Exception as err:
                raise ReducerExecutionError(
                    f"Reducer '{feature_key}' failed: {err}",
                    reducer_name=feature_key,
                    action_type=getattr(action, "type", None),
                ) from err

            if next_substate is None:
                raise ReducerExecutionError(
                    f"Reducer '{feature_key}' returned None",
                    reducer_name=feature_key,
                    action_type=getattr(action, "type", None),
                )
            if feature_key not in state or next_substate is not prev_substate:
                # 只記錄有變化的鍵，其餘保持原參考
                changed[feature_key] = next_substate

        if not changed:
            return state
        with state.mutate() as mm:
            for feature_key, next_substate in changed.items():
                mm[feature_key] = next_substate
            return mm.finish()


def combine_reducers(reducers: Any) -> ReducerManager:
    """
    將多個 reducer 組合成一個 root reducer。

    Args:
        reducers: 鍵到 reducer 的映射，或 Slice 物件序列。

    Returns:
        ReducerManager 實例 (可直接作為 reducer 呼叫)。
    """
    return ReducerManager(reducers)
