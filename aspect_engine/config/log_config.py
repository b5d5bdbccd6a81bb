# aspect_engine/config/log_config.py
from pydantic import BaseModel

DEFAULT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"


class LogConfig(BaseModel):
    """
    dir       : daily log files land here
    rotation  : loguru rotation spec
    retention : loguru retention spec
    level     : minimum level written to the file sink
    format    : loguru record format
    """

    dir: str = "logs"
    rotation: str = "1 day"
    retention: str = "30 days"
    level: str = "INFO"
    format: str = DEFAULT_FORMAT
