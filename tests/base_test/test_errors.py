#!filepath: tests/base_test/test_errors.py
import pytest

from aspect_engine import (
    AccessFault,
    AspectFault,
    FaultKind,
    InternalFault,
    RequestFault,
    UnimplementedFault,
)


@pytest.mark.parametrize(
    "cls, kind",
    [
        (RequestFault, FaultKind.REQUEST),
        (InternalFault, FaultKind.INTERNAL),
        (UnimplementedFault, FaultKind.UNIMPLEMENTED),
        (AccessFault, FaultKind.ACCESS),
    ],
)
def test_fault_kinds(cls, kind):
    e = cls("something broke")

    assert isinstance(e, AspectFault)
    assert e.kind is kind
    assert e.detail == "something broke"
    assert "something broke" in str(e)


def test_explicit_kind():
    e = AspectFault("nope", FaultKind.ACCESS)

    assert e.kind is FaultKind.ACCESS
    assert e.message == "Access denied"


def test_kind_does_not_leak_between_instances():
    AspectFault("a", FaultKind.REQUEST)

    assert AspectFault("b").kind is FaultKind.INTERNAL
