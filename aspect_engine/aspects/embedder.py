# aspect_engine/aspects/embedder.py
from __future__ import annotations

from typing import Optional

import yaml

from aspect_engine import logs
from aspect_engine.aspects.base import UNCHANGED, RealizeResult, Replaced
from aspect_engine.aspects.default import DefaultAspect
from aspect_engine.experiment.records import ExperimentAspect
from aspect_engine.topology import TopologyDescription
from aspect_engine.utils.errors import InternalFault


class EmbedderAspect(DefaultAspect):
    """
    Key/value parameters injected into the realized topology.

    Payload is a YAML mapping. On realize, every key not already set on
    the topology is copied onto it; keys already present win.
    """

    def realize_aspect(
            self,
            exp,
            tid: int,
            aspect: ExperimentAspect,
            topology: Optional[TopologyDescription],
    ) -> RealizeResult:
        if aspect.type != self.type or topology is None:
            return UNCHANGED

        td = topology.clone()
        changed = False
        for stored in exp.get_aspects([aspect.as_pattern()], get_data=True):
            if stored.data is None:
                continue
            try:
                props = yaml.safe_load(stored.data.decode("utf-8")) or {}
            except (UnicodeDecodeError, yaml.YAMLError) as e:
                raise InternalFault(f"Cannot parse parameters in {stored.name}: {e}")
            if not isinstance(props, dict):
                raise InternalFault(f"Parameters in {stored.name} are not a mapping")

            for key, value in props.items():
                if key is None or value is None:
                    continue
                if td.get_attribute(str(key)) is None:
                    td.set_attribute(str(key), str(value))
                    changed = True

        if changed:
            logs.debug(f"[EmbedderAspect] {exp.eid}: parameters from {aspect.name} applied")
            return Replaced(td)
        return UNCHANGED
