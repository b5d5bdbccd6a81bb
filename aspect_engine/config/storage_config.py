# aspect_engine/config/storage_config.py
from pydantic import BaseModel


class StorageConfig(BaseModel):
    """
    db_path         : SQLite file holding experiments / aspects / perms
    experiment_root : parent of every experiment component directory
    aspect_table    : `type implementationName` table for the aspect registry
    """

    db_path: str = "data/experiments.db"
    experiment_root: str | None = "data/experiments"
    aspect_table: str | None = None
