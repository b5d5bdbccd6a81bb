from .base import UNCHANGED, Aspect, RealizeResult, Replaced, Unchanged
from .default import DefaultAspect
from .embedder import EmbedderAspect
from .layout import LayoutAspect
from .orchestration import OrchestrationAspect
from .registry import AspectRegistry, default_registry
from .unimplemented import UnimplementedAspect
from .visualization import VisualizationAspect

__all__ = [
    "Aspect", "RealizeResult", "Replaced", "Unchanged", "UNCHANGED",
    "DefaultAspect",
    "EmbedderAspect",
    "LayoutAspect",
    "OrchestrationAspect",
    "UnimplementedAspect",
    "VisualizationAspect",
    "AspectRegistry", "default_registry",
]
