# aspect_engine/config/orchestration_config.py
from pydantic import BaseModel


class OrchestrationConfig(BaseModel):
    executable: str = "/usr/local/bin/magi_orchestrator.py"
    log_dir: str = "/tmp"
    # seconds to watch a freshly launched orchestrator for an early failure
    startup_wait: float = 1.0
    poll_interval: float = 0.1
    # seconds the validator may take to check a script
    validate_timeout: float = 60.0
