"""
PyStoreKit 錯誤處理模組。

定義所有結構化異常、可序列化的錯誤描述 (SerializedError)，
以及集中式錯誤處理器 ErrorHandler。
"""
import logging
import traceback
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class PyStoreKitError(Exception):
    """所有 PyStoreKit 異常的基礎類。"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.traceback = "".join(traceback.format_stack()[:-1])

    def to_dict(self) -> Dict[str, Any]:
        """
        轉換為可序列化的字典。

        Returns:
            包含錯誤類型、訊息與細節的字典
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": dict(self.details),
            "traceback": self.traceback,
        }

    def __str__(self) -> str:
        if not self.details:
            return self.message
        detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        return f"{self.message} ({detail_str})"


class ConfigurationError(PyStoreKitError):
    """建構期的配置錯誤，例如重複的 slice 名稱或 transition 名稱。"""

    def __init__(self, message: str, component: str, config_key: Optional[str] = None, **kwargs: Any) -> None:
        details = {"component": component}
        if config_key is not None:
            details["config_key"] = config_key
        details.update(kwargs)
        super().__init__(message, details)
        self.component = component
        self.config_key = config_key


class ReentrancyError(PyStoreKitError):
    """在 plain action 的 reduce 或通知過程中再次 dispatch plain action。"""

    def __init__(self, message: str, action_type: Optional[str] = None, **kwargs: Any) -> None:
        details = {"action_type": action_type}
        details.update(kwargs)
        super().__init__(message, details)
        self.action_type = action_type


class ReducerExecutionError(PyStoreKitError):
    """reducer (transition 或 extra transition) 執行時拋出異常。"""

    def __init__(self, message: str, reducer_name: str, action_type: Optional[str], **kwargs: Any) -> None:
        details = {"reducer_name": reducer_name, "action_type": action_type}
        details.update(kwargs)
        super().__init__(message, details)
        self.reducer_name = reducer_name
        self.action_type = action_type


class ActionError(PyStoreKitError):
    """dispatch 了無法識別的值。"""

    def __init__(self, message: str, action_type: Optional[str] = None, payload: Any = None, **kwargs: Any) -> None:
        details = {"action_type": action_type}
        if payload is not None:
            details["payload"] = payload
        details.update(kwargs)
        super().__init__(message, details)
        self.action_type = action_type


class DraftRevokedError(PyStoreKitError):
    """在 recipe 結束後仍然存取 draft。"""

    def __init__(self, message: str = "Cannot use a draft after its recipe has finished", **kwargs: Any) -> None:
        super().__init__(message, kwargs)


class ImmutabilityError(PyStoreKitError):
    """狀態樹中出現了可變容器。"""

    def __init__(self, message: str, path: str, value_type: str, **kwargs: Any) -> None:
        details = {"path": path, "value_type": value_type}
        details.update(kwargs)
        super().__init__(message, details)
        self.path = path


class SerializedError(BaseModel):
    """
    可序列化的錯誤描述，作為 rejected action 的負載。

    永遠不直接攜帶原始異常物件。
    """

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    message: Optional[str] = None
    code: Optional[str] = None


class AsyncOperationError(PyStoreKitError):
    """非同步操作失敗；只由 unwrap_result 拋出。"""

    def __init__(self, error: SerializedError, action_type: Optional[str] = None, payload: Any = None) -> None:
        message = error.message or "Async operation rejected"
        super().__init__(message, {"action_type": action_type, "name": error.name, "code": error.code})
        self.error = error
        self.payload = payload


def miniserialize_error(value: Any) -> SerializedError:
    """
    將任意異常 (或值) 轉換為 SerializedError。

    Args:
        value: 通常是 Exception 實例，也可以是任意值

    Returns:
        只包含 name、message、code 的錯誤描述
    """
    if isinstance(value, SerializedError):
        return value
    if isinstance(value, BaseException):
        code = getattr(value, "code", None)
        if code is None:
            code = getattr(value, "errno", None)
        return SerializedError(
            name=type(value).__name__,
            message=str(value),
            code=str(code) if code is not None else None,
        )
    return SerializedError(message=str(value))


class ErrorHandler:
    """集中式錯誤處理器，用於日誌記錄並轉發錯誤給已註冊的回調。"""

    def __init__(self, log_errors: bool = True) -> None:
        self.log_errors = log_errors
        self.handlers: List[Callable[[Exception, Any], None]] = []

    def register_handler(self, handler: Callable[[Exception, Any], None]) -> None:
        """
        註冊錯誤回調。

        Args:
            handler: 接收 (error, action) 的函數
        """
        self.handlers.append(handler)

    def unregister_handler(self, handler: Callable[[Exception, Any], None]) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    def handle(self, error: Exception, action: Any = None) -> None:
        """
        記錄錯誤並依序呼叫所有回調。回調本身拋出的異常會被記錄，但不會中斷其他回調。

        Args:
            error: 捕獲到的異常
            action: 觸發異常的 action (可選)
        """
        if self.log_errors:
            action_type = getattr(action, "type", None)
            if isinstance(error, PyStoreKitError):
                logger.error("%s while dispatching %s: %s", type(error).__name__, action_type, error)
            else:
                logger.error("Unexpected error while dispatching %s", action_type, exc_info=error)
        for handler in list(self.handlers):
            try:
                handler(error, action)
            except Exception:
                logger.exception("Error handler %r failed", handler)


# 單例錯誤處理器
global_error_handler = ErrorHandler()
