from .records import (
    WILDCARD,
    AccessMember,
    ChangeResult,
    ExperimentAspect,
    RealizationResult,
)

__all__ = [
    "WILDCARD",
    "AccessMember",
    "ChangeResult",
    "ExperimentAspect",
    "RealizationResult",
]
