"""
PyStoreKit: 單一不可變狀態樹、slice、draft 更新與 thunk 的狀態管理庫。
"""

from .errors import (
    PyStoreKitError, ActionError, ConfigurationError, ReentrancyError,
    ReducerExecutionError, DraftRevokedError, ImmutabilityError, AsyncOperationError,
    SerializedError, ErrorHandler, global_error_handler, miniserialize_error
)
from .actions import Action, create_action, init_store
from .draft import NOTHING, apply_draft_update, produce, current, original, is_draft
from .reducers import (
    ActionReducerMapBuilder, ReducerManager, create_reducer, on, combine_reducers
)
from .slice import Slice, create_slice
from .thunks import (
    Thunk, AsyncThunk, RejectWithValue, thunk, create_async_thunk,
    create_async_action, unwrap_result
)
from .middleware import (
    BaseMiddleware, ThunkMiddleware, LoggerMiddleware, ImmutableCheckMiddleware,
    SerializableCheckMiddleware, get_default_middleware
)
from .config import StoreOptions
from .store import Store, create_store, configure_store
from .store_selectors import create_selector
from .immutable_utils import to_immutable, to_dict, to_pydantic

__version__ = "0.1.0"

# 匯出所有公開 API
__all__ = [
    # Errors
    "PyStoreKitError", "ActionError", "ConfigurationError", "ReentrancyError",
    "ReducerExecutionError", "DraftRevokedError", "ImmutabilityError", "AsyncOperationError",
    "SerializedError", "ErrorHandler", "global_error_handler", "miniserialize_error",

    # Actions
    "Action", "create_action", "init_store",

    # Draft
    "NOTHING", "apply_draft_update", "produce", "current", "original", "is_draft",

    # Reducers
    "ActionReducerMapBuilder", "ReducerManager", "create_reducer", "on", "combine_reducers",

    # Slices
    "Slice", "create_slice",

    # Thunks
    "Thunk", "AsyncThunk", "RejectWithValue", "thunk", "create_async_thunk",
    "create_async_action", "unwrap_result",

    # Middleware
    "BaseMiddleware", "ThunkMiddleware", "LoggerMiddleware", "ImmutableCheckMiddleware",
    "SerializableCheckMiddleware", "get_default_middleware",

    # Store
    "StoreOptions", "Store", "create_store", "configure_store",

    # Selectors
    "create_selector",

    # Immutable Utils
    "to_immutable", "to_dict", "to_pydantic",
]
