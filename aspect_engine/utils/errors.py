# aspect_engine/utils/errors.py
from __future__ import annotations

from enum import Enum


class FaultKind(str, Enum):
    ACCESS = "access"
    REQUEST = "request"
    INTERNAL = "internal"
    UNIMPLEMENTED = "unimplemented"


_DEFAULT_MESSAGE = {
    FaultKind.ACCESS: "Access denied",
    FaultKind.REQUEST: "Bad request",
    FaultKind.INTERNAL: "Internal error",
    FaultKind.UNIMPLEMENTED: "Unimplemented",
}


class AspectFault(RuntimeError):
    """
    The single error type raised across the engine.

    kind   : who is to blame (caller -> REQUEST, engine -> INTERNAL)
    detail : human readable diagnostics, preserved through wrapping
    """

    kind: FaultKind = FaultKind.INTERNAL

    def __init__(self, detail: str, kind: FaultKind | None = None):
        if kind is not None:
            self.kind = kind
        self.detail = detail
        super().__init__(f"{_DEFAULT_MESSAGE[self.kind]}: {detail}")

    @property
    def message(self) -> str:
        return _DEFAULT_MESSAGE[self.kind]


class RequestFault(AspectFault):
    """Caller-caused: bad input, missing aspect, naming conflict."""

    kind = FaultKind.REQUEST


class InternalFault(AspectFault):
    """Invariant violation or wrapped storage failure."""

    kind = FaultKind.INTERNAL


class UnimplementedFault(AspectFault):
    kind = FaultKind.UNIMPLEMENTED


class AccessFault(AspectFault):
    kind = FaultKind.ACCESS
