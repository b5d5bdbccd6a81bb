# aspect_engine/aspects/visualization.py
from aspect_engine.aspects.default import DefaultAspect


class VisualizationAspect(DefaultAspect):
    """Drawing hints for an experiment. Stored verbatim, never realized."""

    TYPE = "visualization"

    def __init__(self, aspect_type: str = TYPE):
        # the configured type is ignored
        super().__init__(self.TYPE)
