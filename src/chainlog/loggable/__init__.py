from chainlog.loggable.capability import BlockHandle, EntityLogger, LoggableConfig
from chainlog.loggable.service import ChainLog

__all__ = ["BlockHandle", "ChainLog", "EntityLogger", "LoggableConfig"]
