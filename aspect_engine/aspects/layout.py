# aspect_engine/aspects/layout.py
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from aspect_engine import logs
from aspect_engine.aspects.base import UNCHANGED, Aspect, RealizeResult, Replaced
from aspect_engine.experiment.records import WILDCARD, ExperimentAspect
from aspect_engine.topology import (
    IsomorphismError,
    TopologyDescription,
    TopologyError,
)
from aspect_engine.utils.errors import (
    InternalFault,
    RequestFault,
    UnimplementedFault,
)

FULL_LAYOUT = "full_layout"
MINIMAL_LAYOUT = "minimal_layout"
FRAGMENT = "fragment"
NAMEMAP = "namemap"

NAME_TEMPLATE = "layout%03d"
NAME_PROBE_LIMIT = 10000


@dataclass
class LayoutContext:
    """
    Per-transaction view of an experiment's layouts.

    canonical : first accepted layout, fully expanded; later layouts must
                be isomorphic to it
    names     : layout names already claimed (stored or added this batch)
    """

    canonical: Optional[TopologyDescription] = None
    names: Set[str] = field(default_factory=set)


class LayoutAspect(Aspect):
    """
    Layout aspects: every layout of an experiment describes the same
    topology. Each accepted layout is stored as a bundle of derived records
    (full, minimal, per fragment, per name map) under `<name>/...`.
    """

    TYPE = "layout"

    def __init__(self, aspect_type: str = TYPE):
        # the configured type is ignored
        super().__init__(self.TYPE)
        self._contexts: Dict[int, LayoutContext] = {}
        self._lock = threading.Lock()

    # --------------------------------------------------
    # context map
    # --------------------------------------------------
    def _context(self, tid: int) -> LayoutContext:
        with self._lock:
            ctxt = self._contexts.get(tid)
        if ctxt is None:
            raise InternalFault(f"No context for transaction {tid}")
        return ctxt

    def open_transactions(self) -> int:
        with self._lock:
            return len(self._contexts)

    # --------------------------------------------------
    # helpers
    # --------------------------------------------------
    @staticmethod
    def _validate_against(td: TopologyDescription, canonical: TopologyDescription) -> None:
        try:
            tmp = td.clone()
            tmp.validate(expand_regions=True)
            tmp.same_as(canonical)
        except TopologyError:
            raise RequestFault("Invalid layout")
        except IsomorphismError:
            raise RequestFault("Topologies are not isomorphic")

    def _unique_name(self, ctxt: LayoutContext) -> str:
        for i in range(NAME_PROBE_LIMIT):
            n = NAME_TEMPLATE % i
            if n not in ctxt.names:
                return n
        raise RequestFault(f"Cannot generate unique aspect name for {self.type}")

    def _bundle(self, name: str, td: TopologyDescription) -> List[ExperimentAspect]:
        """
        The records stored for one accepted layout.
        """
        rv = [ExperimentAspect(type=self.type, name=name, data=td.to_bytes())]

        try:
            full = td.clone()
            mini = td.clone()
            full.validate(expand_regions=True)
        except TopologyError:
            raise InternalFault("Bad layout (How'd it get *here*)")

        rv.append(ExperimentAspect(
            type=self.type, sub_type=FULL_LAYOUT,
            name=f"{name}/{FULL_LAYOUT}", data=full.to_bytes(),
        ))

        for frag in full.get_fragments():
            rv.append(ExperimentAspect(
                type=self.type, sub_type=FRAGMENT,
                name=f"{name}/{FRAGMENT}/{frag.get_name()}", data=frag.to_bytes(),
            ))
            mini.remove_fragment(frag)

        for nm in full.get_namemaps():
            rv.append(ExperimentAspect(
                type=self.type, sub_type=NAMEMAP,
                name=f"{name}/{NAMEMAP}{nm.get_path_name()}", data=nm.to_bytes(),
            ))
            mini.remove_namemap(nm)

        rv.append(ExperimentAspect(
            type=self.type, sub_type=MINIMAL_LAYOUT,
            name=f"{name}/{MINIMAL_LAYOUT}", data=mini.to_bytes(),
        ))
        return rv

    # --------------------------------------------------
    # Aspect contract
    # --------------------------------------------------
    def begin_transaction(self, exp, tid: int) -> None:
        """
        Load the layouts already stored in exp; the first becomes the canon.
        """
        ctxt = LayoutContext()

        for stored in exp.get_aspects([ExperimentAspect(type=self.type)], get_data=True):
            if ctxt.canonical is None:
                try:
                    td = TopologyDescription.from_bytes(stored.data or b"")
                    td.validate(expand_regions=True)
                except TopologyError:
                    raise InternalFault(f"Bad layout aspect in experiment {stored.name}")
                ctxt.canonical = td
            ctxt.names.add(stored.name)

        with self._lock:
            self._contexts[tid] = ctxt

    def add_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> List[ExperimentAspect]:
        ctxt = self._context(tid)

        if aspect.data is None:
            raise RequestFault("No layout data?")

        try:
            td = TopologyDescription.from_bytes(aspect.data)
            td.validate(expand_regions=False)
        except TopologyError as e:
            raise RequestFault(f"Bad layout: {e}")

        if ctxt.canonical is None:
            # expanded once here so later checks need not expand it again
            canonical = td.clone()
            try:
                canonical.validate(expand_regions=True)
            except TopologyError as e:
                raise RequestFault(f"Bad layout: {e}")

            if not aspect.name:
                aspect.name = self._unique_name(ctxt)
            ctxt.names.add(aspect.name)
            rv = self._bundle(aspect.name, td)
            ctxt.canonical = canonical
            logs.info(f"[LayoutAspect] {exp.eid}: canonical layout is {aspect.name}")
            return rv

        self._validate_against(td, ctxt.canonical)
        if not aspect.name:
            aspect.name = self._unique_name(ctxt)
        if aspect.name in ctxt.names:
            raise RequestFault(f"Layout aspect {aspect.name} already exists")
        ctxt.names.add(aspect.name)
        return self._bundle(aspect.name, td)

    def change_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> List[ExperimentAspect]:
        raise UnimplementedFault("Not implemented")

    def remove_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> List[ExperimentAspect]:
        if aspect.sub_type is not None:
            raise RequestFault("Cannot remove layout subtypes")

        ctxt = self._context(tid)
        if aspect.name not in ctxt.names:
            raise RequestFault(f"No such layout {aspect.name}")

        prefix = f"{aspect.name}/"
        rv = [aspect]
        for stored in exp.get_aspects(
                [ExperimentAspect(type=self.type, sub_type=WILDCARD)], get_data=False
        ):
            if stored.name.startswith(prefix):
                rv.append(stored)

        ctxt.names.discard(aspect.name)
        return rv

    def realize_aspect(
            self,
            exp,
            tid: int,
            aspect: ExperimentAspect,
            topology: Optional[TopologyDescription],
    ) -> RealizeResult:
        """
        The first full layout supplies the base topology; nothing else is
        touched once a topology exists.
        """
        if topology is not None:
            return UNCHANGED
        if aspect.type != self.TYPE or aspect.sub_type != FULL_LAYOUT:
            return UNCHANGED

        rv: Optional[TopologyDescription] = None
        for stored in exp.get_aspects([aspect.as_pattern()], get_data=True):
            if rv is not None:
                raise InternalFault("Multiple definitions of aspect")
            try:
                rv = TopologyDescription.from_bytes(stored.data or b"")
            except TopologyError as e:
                raise InternalFault(f"Bad stored topology: {e}")

        return UNCHANGED if rv is None else Replaced(rv)

    def release_aspect(self, exp, tid: int, aspect: ExperimentAspect) -> None:
        pass

    def finalize_transaction(self, exp, tid: int) -> None:
        with self._lock:
            self._contexts.pop(tid, None)

