# aspect_engine/aspects/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Union

from aspect_engine.experiment.records import ExperimentAspect
from aspect_engine.topology import TopologyDescription

if TYPE_CHECKING:
    from aspect_engine.experiment.immutable import ImmutableExperiment


# ------------------------------------------------------------------
# realize result (tagged)
# ------------------------------------------------------------------
@dataclass(frozen=True)
class Unchanged:
    """The aspect made no change to the topology under realization."""


@dataclass(frozen=True)
class Replaced:
    topology: TopologyDescription


RealizeResult = Union[Unchanged, Replaced]

UNCHANGED = Unchanged()


class Aspect(ABC):
    """
    Aspect plugin contract (FROZEN)

    One instance per aspect type per process, driven by process_aspects:

        begin_transaction  -> once per type per batch, may cache state
        add / change / remove / realize / release
                           -> once per item of that type
        finalize_transaction
                           -> exactly once per begun type, even after a
                              failure earlier in the batch

    add / change / remove return the records that will actually be
    persisted (or deleted). A plugin may fan one input out into many
    sub-records or reject it by raising an AspectFault.
    """

    def __init__(self, aspect_type: str):
        self._type = aspect_type

    @property
    def type(self) -> str:
        return self._type

    def get_type(self) -> str:
        return self._type

    @abstractmethod
    def begin_transaction(self, exp: "ImmutableExperiment", tid: int) -> None:
        ...

    @abstractmethod
    def add_aspect(
            self, exp: "ImmutableExperiment", tid: int, aspect: ExperimentAspect
    ) -> List[ExperimentAspect]:
        ...

    @abstractmethod
    def change_aspect(
            self, exp: "ImmutableExperiment", tid: int, aspect: ExperimentAspect
    ) -> List[ExperimentAspect]:
        ...

    @abstractmethod
    def remove_aspect(
            self, exp: "ImmutableExperiment", tid: int, aspect: ExperimentAspect
    ) -> List[ExperimentAspect]:
        ...

    @abstractmethod
    def realize_aspect(
            self,
            exp: "ImmutableExperiment",
            tid: int,
            aspect: ExperimentAspect,
            topology: Optional[TopologyDescription],
    ) -> RealizeResult:
        ...

    @abstractmethod
    def release_aspect(
            self, exp: "ImmutableExperiment", tid: int, aspect: ExperimentAspect
    ) -> None:
        ...

    @abstractmethod
    def finalize_transaction(self, exp: "ImmutableExperiment", tid: int) -> None:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self._type!r})"
