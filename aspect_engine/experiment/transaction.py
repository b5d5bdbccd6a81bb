# aspect_engine/experiment/transaction.py
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from aspect_engine.aspects.base import Aspect, Replaced
from aspect_engine.experiment.records import ExperimentAspect
from aspect_engine.topology import TopologyDescription
from aspect_engine.utils.errors import AspectFault, InternalFault, RequestFault
from aspect_engine.utils.logger import logs

if TYPE_CHECKING:
    from aspect_engine.aspects.registry import AspectRegistry
    from aspect_engine.experiment.immutable import ImmutableExperiment


# ------------------------------------------------------------------
# operations
# ------------------------------------------------------------------
class AspectOperation:
    """One Aspect method applied to one input record."""

    name = "operation"

    def __call__(
            self, asp: Aspect, exp: "ImmutableExperiment", tid: int, aspect: ExperimentAspect
    ) -> List[ExperimentAspect]:
        raise NotImplementedError


class AddOperation(AspectOperation):
    name = "add"

    def __call__(self, asp, exp, tid, aspect):
        return asp.add_aspect(exp, tid, aspect)


class ChangeOperation(AspectOperation):
    name = "change"

    def __call__(self, asp, exp, tid, aspect):
        return asp.change_aspect(exp, tid, aspect)


class RemoveOperation(AspectOperation):
    name = "remove"

    def __call__(self, asp, exp, tid, aspect):
        return asp.remove_aspect(exp, tid, aspect)


class ReleaseOperation(AspectOperation):
    name = "release"

    def __call__(self, asp, exp, tid, aspect):
        asp.release_aspect(exp, tid, aspect)
        return []


class RealizeOperation(AspectOperation):
    """
    Carries the topology under realization across calls.
    `changed` records whether any call in the current round replaced it.
    """

    name = "realize"

    def __init__(self, topology: Optional[TopologyDescription] = None):
        self.topology = topology
        self.changed = False

    def start_round(self) -> None:
        self.changed = False

    def __call__(self, asp, exp, tid, aspect):
        result = asp.realize_aspect(exp, tid, aspect, self.topology)
        if isinstance(result, Replaced):
            self.topology = result.topology
            self.changed = True
        return [aspect]


# ------------------------------------------------------------------
# driver
# ------------------------------------------------------------------
def process_aspects(
        aspects: Iterable[ExperimentAspect],
        registry: "AspectRegistry",
        exp: "ImmutableExperiment",
        op: AspectOperation,
) -> List[ExperimentAspect]:
    """
    Run `op` over every input under one transaction id.

    - each type's Aspect is begun lazily, the first time the type is seen
    - the first fault stops the walk
    - every begun Aspect is finalized, even after a fault; a fault from
      finalize is kept only if nothing failed earlier
    - the transaction id is released exactly once
    - the first fault is raised after cleanup
    """
    rv: List[ExperimentAspect] = []
    started: Dict[str, Aspect] = {}
    first: Optional[AspectFault] = None
    tid = registry.get_transaction_id()

    try:
        for a in aspects:
            if a.type is None:
                raise RequestFault("Untyped aspect")

            asp = started.get(a.type)
            if asp is None:
                asp = registry.get_instance(a.type)
                asp.begin_transaction(exp, tid)
                started[a.type] = asp

            rv.extend(op(asp, exp, tid, a))

    except AspectFault as e:
        first = e
    except Exception as e:
        logs.exception(f"[process_aspects] {op.name} failed in plugin")
        first = InternalFault(f"Unexpected error during {op.name}: {e}")

    finally:
        for t, asp in started.items():
            try:
                asp.finalize_transaction(exp, tid)
            except AspectFault as e:
                if first is None:
                    first = e
                else:
                    logs.warning(f"[process_aspects] finalize {t} failed after earlier fault: {e}")
            except Exception as e:
                logs.exception(f"[process_aspects] finalize {t} failed")
                if first is None:
                    first = InternalFault(f"Unexpected error finalizing {t}: {e}")
        registry.release_transaction_id(tid)

    if first is not None:
        raise first
    return rv
