"""
PyStoreKit 的 Draft 更新引擎。

apply_draft_update(base, recipe) 會把 base 包裝成一個可「直接修改」的 draft，
recipe 以一般的賦值語法修改 draft，結束後引擎只複製被觸及的路徑，
其餘子結構與 base 保持同一個參考 (結構共享)。

支援的容器:
    - immutables.Map 與 dict: 以 draft["key"] 讀寫
    - tuple 與 list: 以索引讀寫，並支援 append / insert / pop 等方法
    - pydantic BaseModel: 以屬性讀寫，結束時使用 model_copy(update=...)

範例:
    >>> state = Map(value=0, todos=())
    >>> def recipe(draft):
    ...     draft["value"] += 1
    ...     draft["todos"].append(Map(text="write docs"))
    >>> new_state = apply_draft_update(state, recipe)
"""
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

from immutables import Map
from pydantic import BaseModel

from .errors import DraftRevokedError
from .immutable_utils import to_immutable

S = TypeVar("S")


class _Nothing:
    """recipe 回傳此哨兵值時，結果為 None。"""

    __slots__ = ()

    def __repr__(self) -> str:
        return "NOTHING"


NOTHING = _Nothing()

_UNSET = object()


class _Scope:
    """單次 recipe 執行期間所有 draft 共享的狀態。"""

    __slots__ = ("revoked",)

    def __init__(self) -> None:
        self.revoked = False


def is_draftable(value: Any) -> bool:
    """判斷 value 是否能被包裝成 draft。"""
    if isinstance(value, Draft):
        return False
    if isinstance(value, (Map, BaseModel)):
        return True
    if type(value) in (dict, list, tuple):
        return True
    # namedtuple
    return isinstance(value, tuple) and hasattr(value, "_make")


def is_draft(value: Any) -> bool:
    return isinstance(value, Draft)


_LEAF_TYPES = (str, bytes, int, float, complex, bool)


def _same_value(old: Any, new: Any) -> bool:
    """同一物件，或型別相同且相等的純量值，都視為沒有變化。"""
    if old is new:
        return True
    return type(old) is type(new) and isinstance(old, _LEAF_TYPES) and old == new


def _create_draft(value: Any, scope: _Scope) -> "Draft":
    if isinstance(value, (Map, dict)):
        return MapDraft(value, scope)
    if isinstance(value, BaseModel):
        return ModelDraft(value, scope)
    return SequenceDraft(value, scope)


def _current_value(value: Any) -> Any:
    if isinstance(value, Draft):
        return value._current()
    return value


def _finalize_value(value: Any) -> Any:
    """
    完成一個值：draft 轉為最終結果，新寫入的容器中若包含 draft 也一併完成。

    沒有任何變化的容器會原樣返回。
    """
    if isinstance(value, Draft):
        return value._finalize()
    if type(value) is dict:
        items = {k: _finalize_value(v) for k, v in value.items()}
        if all(items[k] is v for k, v in value.items()):
            return value
        return items
    if type(value) in (list, tuple):
        seq = [_finalize_value(v) for v in value]
        if all(a is b for a, b in zip(seq, value)):
            return value
        return type(value)(seq)
    if isinstance(value, Map):
        changed = {}
        for k, v in value.items():
            final = _finalize_value(v)
            if final is not v:
                changed[k] = final
        return value.update(changed) if changed else value
    return value


class Draft:
    """所有 draft 的基礎類。"""

    __slots__ = ("_base", "_copy", "_scope", "_result")

    def __init__(self, base: Any, scope: _Scope) -> None:
        object.__setattr__(self, "_base", base)
        object.__setattr__(self, "_copy", None)
        object.__setattr__(self, "_scope", scope)
        object.__setattr__(self, "_result", _UNSET)

    def _assert_live(self) -> None:
        if self._scope.revoked:
            raise DraftRevokedError()

    def _freezes_children(self) -> bool:
        """不可變容器中新寫入的值需要轉為不可變形式。"""
        return isinstance(self._base, (Map, tuple))

    def _final_child(self, value: Any) -> Any:
        final = _finalize_value(value)
        if self._freezes_children() and not isinstance(value, Draft):
            final = to_immutable(final)
        return final

    def _finalize(self) -> Any:
        # 同一個子 draft 可能被引用兩次，只計算一次
        if self._result is _UNSET:
            object.__setattr__(self, "_result", self._build_result())
        return self._result

    def _build_result(self) -> Any:
        raise NotImplementedError

    def _current(self) -> Any:
        raise NotImplementedError

    def __repr__(self) -> str:
        if self._scope.revoked:
            return f"<{type(self).__name__} (revoked)>"
        return f"<{type(self).__name__} {self._current()!r}>"


class MapDraft(Draft):
    """immutables.Map / dict 的 draft。"""

    __slots__ = ()

    def _source(self) -> Any:
        return self._copy if self._copy is not None else self._base

    def _prepare_copy(self) -> Dict[Any, Any]:
        if self._copy is None:
            object.__setattr__(self, "_copy", dict(self._base.items()))
        return self._copy

    def __getitem__(self, key: Any) -> Any:
        self._assert_live()
        value = self._source()[key]
        if is_draftable(value):
            child = _create_draft(value, self._scope)
            self._prepare_copy()[key] = child
            return child
        return value

    def __setitem__(self, key: Any, value: Any) -> None:
        self._assert_live()
        if self._copy is None and key in self._base and _same_value(self._base[key], value):
            return
        self._prepare_copy()[key] = value

    def __delitem__(self, key: Any) -> None:
        self._assert_live()
        if key not in self._source():
            raise KeyError(key)
        del self._prepare_copy()[key]

    def __contains__(self, key: Any) -> bool:
        self._assert_live()
        return key in self._source()

    def __len__(self) -> int:
        self._assert_live()
        return len(self._source())

    def __iter__(self) -> Iterator[Any]:
        self._assert_live()
        return iter(list(self._source().keys()))

    def keys(self) -> List[Any]:
        return list(self)

    def values(self) -> List[Any]:
        return [self[k] for k in self]

    def items(self) -> List[Any]:
        return [(k, self[k]) for k in self]

    def get(self, key: Any, default: Any = None) -> Any:
        if key in self:
            return self[key]
        return default

    def update(self, other: Any = (), **kwargs: Any) -> None:
        pairs = other.items() if hasattr(other, "items") else other
        for key, value in pairs:
            self[key] = value
        for key, value in kwargs.items():
            self[key] = value

    def setdefault(self, key: Any, default: Any = None) -> Any:
        if key in self:
            return self[key]
        self[key] = default
        return default

    def pop(self, key: Any, default: Any = _UNSET) -> Any:
        self._assert_live()
        if key not in self._source():
            if default is _UNSET:
                raise KeyError(key)
            return default
        value = _current_value(self._source()[key])
        del self[key]
        return value

    def clear(self) -> None:
        self._assert_live()
        self._prepare_copy().clear()

    def _build_result(self) -> Any:
        base = self._base
        if self._copy is None:
            return base

        updates = {}
        for key, value in self._copy.items():
            new_value = self._final_child(value)
            if key in base and _same_value(base[key], new_value):
                continue
            updates[key] = new_value
        removed = [key for key in base.keys() if key not in self._copy]

        if not updates and not removed:
            return base
        if isinstance(base, Map):
            # Map.mutate 保留未觸及節點的結構共享
            with base.mutate() as mm:
                for key, value in updates.items():
                    mm[key] = value
                for key in removed:
                    del mm[key]
                return mm.finish()
        return {key: updates[key] if key in updates else base[key] for key in self._copy}

    def _current(self) -> Any:
        if self._copy is None:
            return self._base
        items = {k: _current_value(v) for k, v in self._copy.items()}
        if isinstance(self._base, Map):
            return Map(items)
        return items


class SequenceDraft(Draft):
    """tuple / list 的 draft。"""

    __slots__ = ()

    def _source(self) -> Any:
        return self._copy if self._copy is not None else self._base

    def _prepare_copy(self) -> List[Any]:
        if self._copy is None:
            object.__setattr__(self, "_copy", list(self._base))
        return self._copy

    def _normalize_index(self, index: int) -> int:
        length = len(self._source())
        if index < 0:
            index += length
        if not 0 <= index < length:
            raise IndexError("draft index out of range")
        return index

    def __getitem__(self, index: Any) -> Any:
        self._assert_live()
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self._source())))]
        index = self._normalize_index(index)
        value = self._source()[index]
        if is_draftable(value):
            child = _create_draft(value, self._scope)
            self._prepare_copy()[index] = child
            return child
        return value

    def __setitem__(self, index: Any, value: Any) -> None:
        self._assert_live()
        if isinstance(index, slice):
            self._prepare_copy()[index] = list(value)
            return
        index = self._normalize_index(index)
        if self._copy is None and _same_value(self._base[index], value):
            return
        self._prepare_copy()[index] = value

    def __delitem__(self, index: Any) -> None:
        self._assert_live()
        if not isinstance(index, slice):
            index = self._normalize_index(index)
        del self._prepare_copy()[index]

    def __len__(self) -> int:
        self._assert_live()
        return len(self._source())

    def __iter__(self) -> Iterator[Any]:
        for i in range(len(self)):
            yield self[i]

    def __contains__(self, value: Any) -> bool:
        self._assert_live()
        return any(_current_value(v) == value for v in self._source())

    def index(self, value: Any) -> int:
        self._assert_live()
        for i, item in enumerate(self._source()):
            if _current_value(item) == value:
                return i
        raise ValueError(f"{value!r} is not in draft")

    def count(self, value: Any) -> int:
        self._assert_live()
        return sum(1 for item in self._source() if _current_value(item) == value)

    def append(self, value: Any) -> None:
        self._assert_live()
        self._prepare_copy().append(value)

    def extend(self, values: Any) -> None:
        self._assert_live()
        self._prepare_copy().extend(values)

    def insert(self, index: int, value: Any) -> None:
        self._assert_live()
        self._prepare_copy().insert(index, value)

    def pop(self, index: int = -1) -> Any:
        self._assert_live()
        index = self._normalize_index(index)
        return _current_value(self._prepare_copy().pop(index))

    def remove(self, value: Any) -> None:
        del self[self.index(value)]

    def clear(self) -> None:
        self._assert_live()
        self._prepare_copy().clear()

    def reverse(self) -> None:
        self._assert_live()
        self._prepare_copy().reverse()

    def sort(self, key: Optional[Callable[[Any], Any]] = None, reverse: bool = False) -> None:
        self._assert_live()
        sort_key = key if key is not None else _current_value
        self._prepare_copy().sort(key=sort_key, reverse=reverse)

    def _rebuild(self, items: List[Any]) -> Any:
        base_type = type(self._base)
        if base_type is list:
            return items
        if base_type is tuple:
            return tuple(items)
        return base_type._make(items)

    def _build_result(self) -> Any:
        base = self._base
        if self._copy is None:
            return base
        items = [self._final_child(v) for v in self._copy]
        items = [base[i] if i < len(base) and _same_value(base[i], v) else v for i, v in enumerate(items)]
        if len(items) == len(base) and all(a is b for a, b in zip(items, base)):
            return base
        return self._rebuild(items)

    def _current(self) -> Any:
        if self._copy is None:
            return self._base
        return self._rebuild([_current_value(v) for v in self._copy])


class ModelDraft(Draft):
    """pydantic BaseModel 的 draft，以屬性讀寫。"""

    __slots__ = ()

    def _fields(self) -> Any:
        return type(self._base).model_fields

    def _prepare_copy(self) -> Dict[str, Any]:
        if self._copy is None:
            object.__setattr__(self, "_copy", {f: getattr(self._base, f) for f in self._fields()})
        return self._copy

    def __getattr__(self, name: str) -> Any:
        # 只有在一般屬性查找失敗時才會進入
        if name.startswith("__"):
            raise AttributeError(name)
        self._assert_live()
        if name not in self._fields():
            return getattr(self._base, name)
        source = self._copy if self._copy is not None else None
        value = source[name] if source is not None else getattr(self._base, name)
        if is_draftable(value):
            child = _create_draft(value, self._scope)
            self._prepare_copy()[name] = child
            return child
        return value

    def __setattr__(self, name: str, value: Any) -> None:
        self._assert_live()
        if name not in self._fields():
            raise AttributeError(f"{type(self._base).__name__} has no field '{name}'")
        if self._copy is None and _same_value(getattr(self._base, name), value):
            return
        self._prepare_copy()[name] = value

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"Cannot delete field '{name}' of a model draft")

    def _build_result(self) -> Any:
        base = self._base
        if self._copy is None:
            return base
        updates = {}
        for name, value in self._copy.items():
            new_value = _finalize_value(value)
            if not _same_value(getattr(base, name), new_value):
                updates[name] = new_value
        if not updates:
            return base
        return base.model_copy(update=updates)

    def _current(self) -> Any:
        if self._copy is None:
            return self._base
        return self._base.model_copy(update={k: _current_value(v) for k, v in self._copy.items()})


def original(draft: Draft) -> Any:
    """返回 draft 包裝的原始值。"""
    if not isinstance(draft, Draft):
        raise TypeError(f"original() expects a draft, got {type(draft).__name__}")
    return draft._base


def current(draft: Draft) -> Any:
    """返回 draft 目前內容的快照 (不會結束 draft)。"""
    if not isinstance(draft, Draft):
        raise TypeError(f"current() expects a draft, got {type(draft).__name__}")
    draft._assert_live()
    return draft._current()


def apply_draft_update(base: S, recipe: Callable[[Any], Any]) -> S:
    """
    以 draft 的方式計算 base 的下一個值。

    Args:
        base: 目前的值 (不會被修改)
        recipe: 接收 draft 的函數；可以直接修改 draft 並返回 None，
            或返回一個全新的值作為結果 (此時 draft 上的修改會被丟棄)

    Returns:
        新的值；若沒有任何路徑被修改則返回 base 本身

    Raises:
        recipe 拋出的任何異常都會原樣傳遞，base 保持不變
    """
    if not is_draftable(base):
        # 原始值無法被修改，只能透過返回值替換
        result = recipe(base)
        if result is None:
            return base
        if result is NOTHING:
            return None  # type: ignore
        return result

    scope = _Scope()
    draft = _create_draft(base, scope)
    try:
        result = recipe(draft)
        if result is None or result is draft:
            return draft._finalize()
        if result is NOTHING:
            return None  # type: ignore
        replaced = _finalize_value(result)
        if isinstance(base, (Map, tuple)):
            replaced = to_immutable(replaced)
        return replaced
    finally:
        scope.revoked = True


produce = apply_draft_update
