# aspect_engine/experiment/immutable.py
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional

from aspect_engine.experiment.records import AccessMember, ExperimentAspect
from aspect_engine.utils.errors import InternalFault

if TYPE_CHECKING:
    from aspect_engine.experiment.experiment import Experiment


def _immutable(*args, **kwargs):
    raise InternalFault("Attempt to modify immutable experiment")


class ImmutableExperiment:
    """
    Read-only view of an Experiment, the only form plugins ever see.
    Queries go through to the experiment; every mutator raises.
    """

    def __init__(self, exp: "Experiment"):
        self._exp = exp

    # ---------------- queries ----------------
    @property
    def eid(self) -> str:
        return self._exp.eid

    def get_eid(self) -> str:
        return self._exp.eid

    def exists(self) -> bool:
        return self._exp.exists()

    def get_owner(self) -> str:
        return self._exp.get_owner()

    def get_component_directory(self) -> Optional[Path]:
        return self._exp.get_component_directory()

    def get_aspects(
            self,
            patterns: Optional[Iterable[ExperimentAspect]] = None,
            get_data: bool = False,
    ) -> List[ExperimentAspect]:
        return self._exp.get_aspects(patterns, get_data=get_data)

    def get_acl(self) -> List[AccessMember]:
        return self._exp.get_acl()

    # ---------------- mutators ----------------
    create = _immutable
    remove = _immutable
    set_owner = _immutable
    add_aspects = _immutable
    change_aspects = _immutable
    remove_aspects = _immutable
    realize_aspects = _immutable
    release_aspects = _immutable
    assign_permissions = _immutable
    update_owner_credentials = _immutable
    update_circle_credentials = _immutable
    update_policy_credentials = _immutable
    remove_credentials = _immutable
    save_aspect = _immutable
    remove_aspect = _immutable

    def __repr__(self) -> str:
        return f"ImmutableExperiment({self.eid!r})"
