# aspect_engine/experiment/credentials.py
from __future__ import annotations

from typing import Iterable, Optional, Protocol, Set

from aspect_engine.utils.errors import RequestFault
from aspect_engine.utils.logger import logs

READ_EXPERIMENT = "READ_EXPERIMENT"
MODIFY_EXPERIMENT = "MODIFY_EXPERIMENT"
MODIFY_EXPERIMENT_ACCESS = "MODIFY_EXPERIMENT_ACCESS"
REALIZE_EXPERIMENT = "REALIZE_EXPERIMENT"

EXPERIMENT_PERMISSIONS = frozenset({
    READ_EXPERIMENT,
    MODIFY_EXPERIMENT,
    MODIFY_EXPERIMENT_ACCESS,
    REALIZE_EXPERIMENT,
})


def validate_permissions(perms: Iterable[str]) -> Set[str]:
    rv = set(perms)
    bad = sorted(rv - EXPERIMENT_PERMISSIONS)
    if bad:
        raise RequestFault(f"Bad permissions: {', '.join(bad)}")
    return rv


class CredentialManager(Protocol):
    """Regenerates the access credentials derived from an experiment."""

    def update_owner_credentials(self, eid: str, old: Optional[str], new: Optional[str]) -> None:
        ...

    def update_circle_credentials(self, eid: str) -> None:
        ...

    def update_policy_credentials(self, eid: str) -> None:
        ...

    def remove_credentials(self, eid: str) -> None:
        ...


class NullCredentialManager:
    """Keeps no credentials; records what would have been updated."""

    def update_owner_credentials(self, eid: str, old: Optional[str], new: Optional[str]) -> None:
        logs.debug(f"[Credentials] {eid}: owner {old} -> {new}")

    def update_circle_credentials(self, eid: str) -> None:
        logs.debug(f"[Credentials] {eid}: circle credentials")

    def update_policy_credentials(self, eid: str) -> None:
        logs.debug(f"[Credentials] {eid}: policy credentials")

    def remove_credentials(self, eid: str) -> None:
        logs.debug(f"[Credentials] {eid}: credentials removed")
