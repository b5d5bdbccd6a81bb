# aspect_engine/aspects/default.py
from __future__ import annotations

from typing import List, Optional

from aspect_engine.aspects.base import UNCHANGED, Aspect, RealizeResult
from aspect_engine.experiment.records import ExperimentAspect
from aspect_engine.topology import TopologyDescription
from aspect_engine.utils.errors import InternalFault, RequestFault


class DefaultAspect(Aspect):
    """
    Passthrough aspect: stores, overwrites and removes whatever it is
    handed, and has no effect on realization.
    """

    def begin_transaction(self, exp, tid: int) -> None:
        pass

    def add_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> List[ExperimentAspect]:
        return [aspect]

    def change_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> List[ExperimentAspect]:
        matches = exp.get_aspects(
            [ExperimentAspect(type=aspect.type, sub_type=aspect.sub_type, name=aspect.name)],
            get_data=False,
        )
        if not matches:
            raise RequestFault("No such aspect")
        if len(matches) > 1:
            raise InternalFault("More than one such aspect!?")

        # overwrite with the new payload
        return [aspect]

    def remove_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> List[ExperimentAspect]:
        matches = exp.get_aspects(
            [ExperimentAspect(type=self.type, sub_type=aspect.sub_type, name=aspect.name)],
            get_data=False,
        )
        if not matches:
            raise RequestFault("No such aspect")
        return list(matches)

    def realize_aspect(
            self,
            exp,
            tid: int,
            aspect: ExperimentAspect,
            topology: Optional[TopologyDescription],
    ) -> RealizeResult:
        return UNCHANGED

    def release_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> None:
        pass

    def finalize_transaction(self, exp, tid: int) -> None:
        pass
