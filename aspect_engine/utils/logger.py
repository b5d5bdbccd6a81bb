#!filepath: aspect_engine/utils/logger.py
import os
from functools import wraps
from time import perf_counter
from loguru import logger
from typing import Callable, Optional

_LOGGER_CONFIGURED = False


class Logging:
    """
    Engine-wide logger
    ---------------------------------------
    - daily rotated file sink
    - retention window
    - function-level timing decorator
    ---------------------------------------
    """

    def __init__(
        self,
        log_dir: str = "logs",
        rotation: str = "1 day",
        retention: str = "30 days",
        log_level: str = "INFO",
        log_format: str = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
    ):
        self.log_dir = log_dir
        self.rotation = rotation
        self.retention = retention
        self.level = log_level
        self.format = log_format

        os.makedirs(self.log_dir, exist_ok=True)
        self._configure()

    def _configure(self) -> None:
        """
        Configure the global loguru logger (replaces every existing sink).
        """
        global _LOGGER_CONFIGURED

        logger.remove()

        logger.add(
            sink=f"{self.log_dir}/{{time:YYYY-MM-DD}}.log",
            rotation=self.rotation,
            retention=self.retention,
            level=self.level,
            format=self.format,
            enqueue=True,
            backtrace=True,
            diagnose=True,
        )

        logger.info("-----------Logger initialized-----------")
        _LOGGER_CONFIGURED = True

    # ---------- basic interface ----------
    def debug(self, msg: str, *args, **kwargs):
        logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        logger.exception(msg, *args, **kwargs)

    # ---------- decorator ----------
    def catch(
        self,
        msg: str = "Exception occurred",
        log_time: bool = True,
    ) -> Callable:
        """
        Log (and re-raise) any exception escaping the wrapped function,
        optionally logging its wall time.
        """

        def decorator(func: Callable):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start = perf_counter()

                try:
                    result = func(*args, **kwargs)
                except Exception:
                    logger.exception(f"[ERROR] {func.__name__}: {msg}")
                    raise

                if log_time:
                    cost = perf_counter() - start
                    logger.info(f"[TIME] {func.__name__} took {cost:.4f}s")

                return result

            return wrapper

        return decorator


def init_logging(cfg: Optional[object] = None) -> Logging:
    """
    Reconfigure the global `logs` in place from a LogConfig.
    Modules hold a reference to `logs`, so it is never rebound.
    """
    if cfg is not None:
        logs.log_dir = cfg.dir
        logs.rotation = cfg.rotation
        logs.retention = cfg.retention
        logs.level = cfg.level
        logs.format = cfg.format
        os.makedirs(logs.log_dir, exist_ok=True)
    logs._configure()
    return logs


# default global logs (reconfigured by init_logging)
logs = Logging()
