#!filepath: aspect_engine/__init__.py

from .utils.logger import Logging, logs, init_logging
from .utils.filesystem import FileSystem
from .utils.errors import (
    AccessFault,
    AspectFault,
    FaultKind,
    InternalFault,
    RequestFault,
    UnimplementedFault,
)
from .config.app_config import AppConfig

__version__ = "0.1.0"

fs = FileSystem

__all__ = [
    "logs", "Logging", "init_logging",
    "fs",
    "AppConfig",
    "AspectFault", "FaultKind",
    "RequestFault", "InternalFault", "UnimplementedFault", "AccessFault",
    "__version__",
]
