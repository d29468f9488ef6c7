"""Store 的配置選項。"""
import logging
from typing import Any, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError


class StoreOptions(BaseModel):
    """
    configure_store 與 get_default_middleware 使用的選項。

    Attributes:
        thunk: 是否加入 ThunkMiddleware
        immutable_check: 是否在每次 dispatch 後檢查狀態樹中的可變容器
        serializable_check: 是否對不可序列化的 action 負載與狀態發出警告
        ignored_serializable_actions: 不做序列化檢查的 action 類型
        log_actions: 是否加入 LoggerMiddleware
        log_level: LoggerMiddleware 使用的日誌等級
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    thunk: bool = True
    immutable_check: bool = False
    serializable_check: bool = False
    ignored_serializable_actions: Tuple[str, ...] = ()
    log_actions: bool = False
    log_level: str = Field(default="DEBUG", pattern="^(DEBUG|INFO|WARNING|ERROR)$")

    @property
    def log_level_no(self) -> int:
        return logging.getLevelName(self.log_level)


def resolve_options(options: Optional[Union[StoreOptions, Mapping[str, Any]]] = None) -> StoreOptions:
    """
    將 None、字典或 StoreOptions 正規化為 StoreOptions。

    Raises:
        ConfigurationError: 選項不合法
    """
    if options is None:
        return StoreOptions()
    if isinstance(options, StoreOptions):
        return options
    try:
        return StoreOptions(**options)
    except ValidationError as err:
        raise ConfigurationError(f"Invalid store options: {err}", component="configure_store") from err
