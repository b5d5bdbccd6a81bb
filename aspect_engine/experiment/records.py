# aspect_engine/experiment/records.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from aspect_engine.topology import TopologyDescription

WILDCARD = "*"


@dataclass
class ExperimentAspect:
    """
    One aspect as seen by callers and plugins.

    As a query pattern (gather_aspects / get_aspects):
      - name / type None      -> any
      - sub_type None         -> only rows without a subtype
      - sub_type "*"          -> any subtype, including none
    """

    type: Optional[str] = None
    sub_type: Optional[str] = None
    name: Optional[str] = None
    data: Optional[bytes] = None
    reference: Optional[str] = None

    def as_pattern(self) -> "ExperimentAspect":
        """Same identity, no payload."""
        return replace(self, data=None, reference=None)


@dataclass(frozen=True)
class ChangeResult:
    """Outcome of persisting one vetted aspect in a batch."""

    name: Optional[str]
    reason: Optional[str]
    success: bool


@dataclass(frozen=True)
class AccessMember:
    """Permissions one circle holds on an experiment."""

    circle_id: str
    permissions: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RealizationResult:
    """
    topology : consensus topology, None when no aspect supplied one
    rounds   : realization rounds that changed the topology
    """

    topology: Optional["TopologyDescription"]
    rounds: int
