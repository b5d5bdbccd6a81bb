# tests/aspects/test_registry.py
import pytest

from aspect_engine.aspects import (
    AspectRegistry,
    DefaultAspect,
    EmbedderAspect,
    LayoutAspect,
    OrchestrationAspect,
    UnimplementedAspect,
    VisualizationAspect,
)
from aspect_engine.utils.errors import InternalFault


def test_shipped_table(registry):
    assert isinstance(registry.get_instance("layout"), LayoutAspect)
    assert isinstance(registry.get_instance("orchestration"), OrchestrationAspect)
    assert isinstance(registry.get_instance("visualization"), VisualizationAspect)
    assert isinstance(registry.get_instance("embedder"), EmbedderAspect)
    assert isinstance(registry.get_instance("containers"), UnimplementedAspect)


def test_unlisted_type_uses_default(registry):
    asp = registry.get_instance("notes")

    assert type(asp) is DefaultAspect
    assert asp.type == "notes"
    assert asp.get_type() == "notes"


def test_instances_are_cached(registry):
    assert registry.get_instance("layout") is registry.get_instance("layout")
    assert registry.get_instance("notes") is registry.get_instance("notes")
    assert registry.get_instance("notes") is not registry.get_instance("other")


def test_orchestration_gets_config(registry, app_config):
    orch = registry.get_instance("orchestration")

    assert orch.cfg.executable == app_config.orchestration.executable


def test_load_table_skips_bad_lines(tmp_path, app_config):
    table = tmp_path / "aspects.conf"
    table.write_text(
        "# comment\n"
        "\n"
        "layout layout\n"
        "too many fields here\n"
        "lonely\n"
        "mystery nosuchimpl\n"
        "scratch   visualization\n",
        encoding="utf-8",
    )

    reg = AspectRegistry(app_config)
    assert reg.load_table(table) == 2

    assert isinstance(reg.get_instance("layout"), LayoutAspect)
    # the configured type is ignored by VisualizationAspect
    assert reg.get_instance("scratch").type == "visualization"

    # no default registered, nothing for mystery
    with pytest.raises(InternalFault):
        reg.get_instance("mystery")


def test_missing_table_is_not_fatal(tmp_path, app_config):
    reg = AspectRegistry(app_config)

    assert reg.load_table(tmp_path / "nope.conf") == 0


def test_programmatic_registration(app_config):
    reg = AspectRegistry(app_config)
    reg.register_default(DefaultAspect)
    reg.register("vis", VisualizationAspect)

    assert isinstance(reg.get_instance("vis"), VisualizationAspect)
    assert type(reg.get_instance("anything")) is DefaultAspect


def test_register_replaces_cached_instance(app_config):
    reg = AspectRegistry(app_config)
    reg.register("t", DefaultAspect)
    first = reg.get_instance("t")

    reg.register("t", UnimplementedAspect)

    assert first is not reg.get_instance("t")
    assert isinstance(reg.get_instance("t"), UnimplementedAspect)


def test_constructor_failure_is_internal(app_config):
    def broken(aspect_type):
        raise RuntimeError("boom")

    reg = AspectRegistry(app_config)
    reg.register("bad", broken)

    with pytest.raises(InternalFault) as ei:
        reg.get_instance("bad")
    assert "boom" in ei.value.detail


def test_implementation_names():
    assert AspectRegistry.implementation_names() == [
        "default",
        "embedder",
        "layout",
        "orchestration",
        "unimplemented",
        "visualization",
    ]


def test_transaction_ids_unique_and_released(app_config):
    reg = AspectRegistry(app_config)

    tids = [reg.get_transaction_id() for _ in range(200)]

    assert len(set(tids)) == 200
    assert all(-(2 ** 63) <= t < 2 ** 63 for t in tids)
    assert reg.open_transaction_ids() == set(tids)

    for t in tids:
        reg.release_transaction_id(t)
    assert reg.open_transaction_ids() == set()
