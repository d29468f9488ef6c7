import time
from typing import Any, Callable, List, NamedTuple, Optional, Tuple, overload

from immutables import Map

from .types import Input, Output, R, ResultSelector, StateSelector


class CacheInfo(NamedTuple):
    hits: int
    misses: int
    maxsize: int
    currsize: int


@overload
def create_selector(selector: StateSelector[Input, Output], *, deep: bool = False,
                    ttl: Optional[float] = None, maxsize: int = 128) -> StateSelector[Input, Output]:
    """單一選擇器重載"""
    ...


@overload
def create_selector(*selectors: StateSelector[Input, Any], result_fn: ResultSelector[R], deep: bool = False,
                    ttl: Optional[float] = None, maxsize: int = 128) -> StateSelector[Input, R]:
    """組合多個選擇器重載"""
    ...


def create_selector(*selectors: Callable[..., Any], result_fn: Optional[Callable[..., Any]] = None,
                    deep: bool = False, ttl: Optional[float] = None, maxsize: int = 128) -> Callable[..., Any]:
    """
    創建一個複合選擇器，支援記憶化、深淺比較與TTL控制

    輸入選擇器的結果與快取中的某一組相同時 (淺比較為 `is`，深比較為結構相等)，
    直接返回快取的結果，不會重新執行 result_fn。

    Args:
        *selectors: 多個輸入選擇器，接收 (state, *args) 並提取對應的值
        result_fn: 處理輸出結果的函數，將多個選擇器的輸出進行處理
        deep: 是否進行深度比較（預設為 False）
        ttl: 快取有效時間（秒），若超過此時間則重新計算，預設為無限
        maxsize: 緩存的最大條目數，預設為128

    Returns:
        經過快取優化的 selector 函數，帶有 cache_info() 與 cache_clear()

    範例:
        >>> select_value = lambda state: state["counter"]["value"]
        >>> select_doubled = create_selector(select_value, result_fn=lambda value: value * 2)
    """
    if not selectors:
        raise TypeError("create_selector requires at least one input selector")
    if maxsize < 1:
        raise ValueError("maxsize must be at least 1")

    # 如果沒有 result_fn 且只有一個選擇器，直接返回該選擇器
    if result_fn is None and len(selectors) == 1:
        return selectors[0]

    # 如果沒有提供 result_fn，預設為返回所有輸入值的元組
    if result_fn is None:
        result_fn = lambda *args: args

    # (時間戳, 輸入值, 結果)，最近使用的放在最後
    cache: List[Tuple[float, Tuple[Any, ...], Any]] = []
    stats = {"hits": 0, "misses": 0}
    matches = _deep_equals if deep else _same_inputs

    def selector(state: Any, *args: Any) -> Any:
        inputs = tuple(select(state, *args) for select in selectors)
        now = time.monotonic()

        if ttl is not None:
            # 清除過期項
            cache[:] = [entry for entry in cache if now - entry[0] <= ttl]

        for index, (timestamp, cached_inputs, cached_result) in enumerate(cache):
            if matches(inputs, cached_inputs):
                stats["hits"] += 1
                cache.append(cache.pop(index))
                return cached_result

        # 緩存未命中，計算新結果；result_fn 拋出的異常直接傳遞
        stats["misses"] += 1
        result = result_fn(*inputs)
        while len(cache) >= maxsize:
            cache.pop(0)
        cache.append((now, inputs, result))
        return result

    def cache_info() -> CacheInfo:
        return CacheInfo(stats["hits"], stats["misses"], maxsize, len(cache))

    def cache_clear() -> None:
        cache.clear()
        stats["hits"] = stats["misses"] = 0

    selector.cache_info = cache_info  # type: ignore
    selector.cache_clear = cache_clear  # type: ignore
    selector.result_fn = result_fn  # type: ignore
    return selector


def _same_inputs(a: Tuple[Any, ...], b: Tuple[Any, ...]) -> bool:
    return len(a) == len(b) and all(x is y for x, y in zip(a, b))


def _deep_equals(a: Any, b: Any) -> bool:
    """結構相等比較；Map 與 dict、tuple 與 list 視為同一類容器。"""
    if a is b:
        return True
    if isinstance(a, (Map, dict)) and isinstance(b, (Map, dict)):
        if len(a) != len(b):
            return False
        return all(key in b and _deep_equals(value, b[key]) for key, value in a.items())
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(_deep_equals(x, y) for x, y in zip(a, b))
    if type(a) != type(b):
        return False
    return a == b
