# aspect_engine/config/realization_config.py
from pydantic import BaseModel, Field


class RealizationConfig(BaseModel):
    max_rounds: int = Field(default=5, ge=1)
