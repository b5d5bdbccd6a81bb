#!filepath: aspect_engine/config/app_config.py
import os

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .log_config import LogConfig
from .orchestration_config import OrchestrationConfig
from .realization_config import RealizationConfig
from .storage_config import StorageConfig


def project_root() -> str:
    """
    aspect_engine/config/app_config.py -> aspect_engine/config -> aspect_engine -> project_root
    """
    return os.path.abspath(os.path.join(os.path.dirname(__file__), "../../"))


class AppConfig(BaseModel):
    log: LogConfig = Field(default_factory=LogConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)
    realization: RealizationConfig = Field(default_factory=RealizationConfig)

    @staticmethod
    def resolve_path(path: str) -> str:
        """
        Relative paths in the config are relative to the project root.
        """
        if os.path.isabs(path):
            return path
        return os.path.join(project_root(), path)

    @classmethod
    def load(cls, path: str | None = None) -> "AppConfig":
        """
        Load YAML config + .env
        - default: <project_root>/aspect_engine/config/base.yml
        - env overrides: ASPECT_DB_PATH / ASPECT_EXPERIMENT_ROOT /
          ASPECT_TABLE / ORCHESTRATOR_BIN
        """
        root = project_root()

        load_dotenv(os.path.join(root, ".env"))

        if path is None:
            path = os.path.join(root, "aspect_engine/config/base.yml")

        if not os.path.exists(path):
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        storage = raw.setdefault("storage", {})
        for key, env in (
            ("db_path", "ASPECT_DB_PATH"),
            ("experiment_root", "ASPECT_EXPERIMENT_ROOT"),
            ("aspect_table", "ASPECT_TABLE"),
        ):
            if os.getenv(env):
                storage[key] = os.getenv(env)

        if os.getenv("ORCHESTRATOR_BIN"):
            raw.setdefault("orchestration", {})["executable"] = os.getenv("ORCHESTRATOR_BIN")

        return cls(**raw)
