# pystorekit/immutable_utils.py
from typing import Any, Type, TypeVar

from immutables import Map
from pydantic import BaseModel

T = TypeVar('T', bound=BaseModel)


def to_immutable(obj: Any) -> Any:
    """
    將任何對象轉換為不可變形式 (包括 Pydantic 模型)。

    已經是不可變的容器 (Map、tuple、frozenset) 若其內容不需轉換，會原樣返回，
    以保留結構共享。
    """
    if isinstance(obj, BaseModel):
        # Pydantic 模型轉為 Map
        return Map({k: to_immutable(getattr(obj, k)) for k in type(obj).model_fields})
    if isinstance(obj, Map):
        changed = {}
        for k, v in obj.items():
            frozen = to_immutable(v)
            if frozen is not v:
                changed[k] = frozen
        if not changed:
            return obj
        return obj.update(changed)
    if isinstance(obj, dict):
        # 字典轉為 Map
        return Map({k: to_immutable(v) for k, v in obj.items()})
    if isinstance(obj, tuple):
        items = tuple(to_immutable(i) for i in obj)
        if all(a is b for a, b in zip(items, obj)):
            return obj
        return items
    if isinstance(obj, list):
        # 列表轉為元組
        return tuple(to_immutable(i) for i in obj)
    if isinstance(obj, set):
        # 集合轉為凍結集合
        return frozenset(to_immutable(i) for i in obj)
    # 其他類型直接返回
    return obj


def to_dict(obj: Any) -> Any:
    """將 Map 及其巢狀結構轉換為普通字典"""
    if isinstance(obj, Map):
        return {k: to_dict(v) for k, v in obj.items()}
    if isinstance(obj, BaseModel):
        return obj.model_dump()
    if isinstance(obj, tuple):
        return [to_dict(i) for i in obj]
    if isinstance(obj, frozenset):
        return {to_dict(i) for i in obj}
    return obj


def to_pydantic(map_obj: Map, model_class: Type[T]) -> T:
    """將 Map 轉換回 Pydantic 模型 (僅在需要時使用)"""
    return model_class(**to_dict(map_obj))


def find_mutable(obj: Any, path: str = "state") -> Any:
    """
    在巢狀結構中尋找第一個可變容器。

    Returns:
        (path, value) 元組；沒有可變容器時返回 None
    """
    if isinstance(obj, (dict, list, set, bytearray)):
        return path, obj
    if isinstance(obj, Map):
        for k, v in obj.items():
            found = find_mutable(v, f"{path}.{k}")
            if found:
                return found
    elif isinstance(obj, (tuple, frozenset)):
        for i, v in enumerate(obj):
            found = find_mutable(v, f"{path}[{i}]")
            if found:
                return found
    return None
