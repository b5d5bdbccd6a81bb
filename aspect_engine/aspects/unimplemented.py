# aspect_engine/aspects/unimplemented.py
from __future__ import annotations

from typing import List, Optional

from aspect_engine.aspects.base import Aspect, RealizeResult
from aspect_engine.experiment.records import ExperimentAspect
from aspect_engine.topology import TopologyDescription
from aspect_engine.utils.errors import UnimplementedFault


class UnimplementedAspect(Aspect):
    """
    Placeholder for aspect types that are declared but not supported.
    Every operation on an aspect of this type fails.
    """

    def _refuse(self):
        raise UnimplementedFault(f"Aspect {self.type} is unimplemented")

    def begin_transaction(self, exp, tid: int) -> None:
        pass

    def add_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> List[ExperimentAspect]:
        self._refuse()

    def change_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> List[ExperimentAspect]:
        self._refuse()

    def remove_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> List[ExperimentAspect]:
        self._refuse()

    def realize_aspect(
            self,
            exp,
            tid: int,
            aspect: ExperimentAspect,
            topology: Optional[TopologyDescription],
    ) -> RealizeResult:
        self._refuse()

    def release_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> None:
        self._refuse()

    def finalize_transaction(self, exp, tid: int) -> None:
        pass
