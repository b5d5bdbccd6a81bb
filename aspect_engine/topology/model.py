# aspect_engine/topology/model.py
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import networkx as nx
import yaml


class TopologyError(ValueError):
    """Malformed or inconsistent topology description."""


class IsomorphismError(Exception):
    """Two topologies do not have the same structure."""


ELEMENT_KINDS = ("computer", "substrate", "region")

# Attributes that only decorate a drawing; never part of the structure.
ANNOTATION_KEYS = frozenset({"description", "comment", "label"})
ANNOTATION_PREFIXES = ("layout.", "annotation.", "vis.")


def is_annotation(key: str) -> bool:
    return key in ANNOTATION_KEYS or key.startswith(ANNOTATION_PREFIXES)


def _structural(attrs: Dict[str, Any]) -> frozenset:
    return frozenset(
        (k, str(v)) for k, v in attrs.items() if not is_annotation(k)
    )


def _str_attrs(raw: Any, where: str) -> Dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise TopologyError(f"{where}: attributes must be a mapping")
    return {str(k): str(v) for k, v in raw.items()}


# ----------------------------------------------------------------------
# Building blocks
# ----------------------------------------------------------------------
@dataclass
class Element:
    name: str
    kind: str = "computer"
    attributes: Dict[str, str] = field(default_factory=dict)
    # region only
    fragment: Optional[str] = None
    count: int = 1

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Element":
        if not isinstance(raw, dict) or not raw.get("name"):
            raise TopologyError(f"element without a name: {raw!r}")
        try:
            count = int(raw.get("count", 1))
        except (TypeError, ValueError):
            raise TopologyError(f"element {raw['name']}: bad count")
        return cls(
            name=str(raw["name"]),
            kind=str(raw.get("kind", "computer")),
            attributes=_str_attrs(raw.get("attributes"), str(raw["name"])),
            fragment=raw.get("fragment"),
            count=count,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "kind": self.kind}
        if self.attributes:
            d["attributes"] = dict(self.attributes)
        if self.kind == "region":
            d["fragment"] = self.fragment
            d["count"] = self.count
        return d


@dataclass
class Interface:
    element: str
    substrate: str
    attributes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Interface":
        if not isinstance(raw, dict) or "element" not in raw or "substrate" not in raw:
            raise TopologyError(f"interface needs element and substrate: {raw!r}")
        return cls(
            element=str(raw["element"]),
            substrate=str(raw["substrate"]),
            attributes=_str_attrs(raw.get("attributes"), "interface"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"element": self.element, "substrate": self.substrate}
        if self.attributes:
            d["attributes"] = dict(self.attributes)
        return d


@dataclass
class Fragment:
    """A reusable sub-topology instantiated by region elements."""

    name: str
    elements: List[Element] = field(default_factory=list)
    interfaces: List[Interface] = field(default_factory=list)

    def get_name(self) -> str:
        return self.name

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Fragment":
        if not isinstance(raw, dict) or not raw.get("name"):
            raise TopologyError(f"fragment without a name: {raw!r}")
        return cls(
            name=str(raw["name"]),
            elements=[Element.from_dict(e) for e in raw.get("elements") or []],
            interfaces=[Interface.from_dict(i) for i in raw.get("interfaces") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "elements": [e.to_dict() for e in self.elements],
            "interfaces": [i.to_dict() for i in self.interfaces],
        }

    def to_bytes(self) -> bytes:
        return yaml.safe_dump({"fragments": [self.to_dict()]}, sort_keys=False).encode("utf-8")


@dataclass
class NameMap:
    """Maps names inside an expanded region back to fragment names."""

    path_name: str
    names: Dict[str, str] = field(default_factory=dict)

    def get_path_name(self) -> str:
        return self.path_name

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "NameMap":
        if not isinstance(raw, dict) or not raw.get("path"):
            raise TopologyError(f"name map without a path: {raw!r}")
        return cls(path_name=str(raw["path"]), names=_str_attrs(raw.get("names"), "namemap"))

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path_name, "names": dict(self.names)}

    def to_bytes(self) -> bytes:
        return yaml.safe_dump({"namemaps": [self.to_dict()]}, sort_keys=False).encode("utf-8")


# ----------------------------------------------------------------------
# TopologyDescription
# ----------------------------------------------------------------------
class TopologyDescription:
    """
    Experiment topology: computers and substrates joined by interfaces,
    optionally compacted with regions that instantiate fragments.

    Only the calls the aspect engine needs are offered: parse / dump,
    clone, validate (with optional region expansion), isomorphism check,
    attribute access and fragment / name map enumeration.
    """

    def __init__(
            self,
            elements: Optional[List[Element]] = None,
            interfaces: Optional[List[Interface]] = None,
            attributes: Optional[Dict[str, str]] = None,
            fragments: Optional[List[Fragment]] = None,
            namemaps: Optional[List[NameMap]] = None,
    ):
        self.elements: List[Element] = elements or []
        self.interfaces: List[Interface] = interfaces or []
        self.attributes: Dict[str, str] = attributes or {}
        self.fragments: List[Fragment] = fragments or []
        self.namemaps: List[NameMap] = namemaps or []

    # --------------------------------------------------
    # parse / dump
    # --------------------------------------------------
    @classmethod
    def from_dict(cls, raw: Any) -> "TopologyDescription":
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise TopologyError("topology must be a mapping")
        return cls(
            elements=[Element.from_dict(e) for e in raw.get("elements") or []],
            interfaces=[Interface.from_dict(i) for i in raw.get("interfaces") or []],
            attributes=_str_attrs(raw.get("attributes"), "topology"),
            fragments=[Fragment.from_dict(f) for f in raw.get("fragments") or []],
            namemaps=[NameMap.from_dict(n) for n in raw.get("namemaps") or []],
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "TopologyDescription":
        try:
            raw = yaml.safe_load(data.decode("utf-8"))
        except (UnicodeDecodeError, yaml.YAMLError) as e:
            raise TopologyError(f"cannot parse topology: {e}")
        return cls.from_dict(raw)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.attributes:
            d["attributes"] = dict(self.attributes)
        d["elements"] = [e.to_dict() for e in self.elements]
        d["interfaces"] = [i.to_dict() for i in self.interfaces]
        if self.fragments:
            d["fragments"] = [f.to_dict() for f in self.fragments]
        if self.namemaps:
            d["namemaps"] = [n.to_dict() for n in self.namemaps]
        return d

    def to_bytes(self) -> bytes:
        return yaml.safe_dump(self.to_dict(), sort_keys=False).encode("utf-8")

    def clone(self) -> "TopologyDescription":
        return copy.deepcopy(self)

    # --------------------------------------------------
    # attributes
    # --------------------------------------------------
    def get_attribute(self, key: str) -> Optional[str]:
        return self.attributes.get(key)

    def set_attribute(self, key: str, value: str) -> None:
        self.attributes[key] = str(value)

    # --------------------------------------------------
    # fragments / name maps
    # --------------------------------------------------
    def get_fragments(self) -> List[Fragment]:
        return list(self.fragments)

    def remove_fragment(self, fragment: Fragment) -> None:
        self.fragments = [f for f in self.fragments if f.name != fragment.name]

    def get_namemaps(self) -> List[NameMap]:
        return list(self.namemaps)

    def remove_namemap(self, namemap: NameMap) -> None:
        self.namemaps = [n for n in self.namemaps if n.path_name != namemap.path_name]

    def get_element(self, name: str) -> Optional[Element]:
        for e in self.elements:
            if e.name == name:
                return e
        return None

    # --------------------------------------------------
    # validation / expansion
    # --------------------------------------------------
    def validate(self, expand_regions: bool = False) -> None:
        """
        Check structural consistency. With expand_regions, every region is
        replaced by `count` copies of its fragment and a name map is added
        per region. Raises TopologyError.
        """
        fragments = {}
        for f in self.fragments:
            if f.name in fragments:
                raise TopologyError(f"duplicate fragment {f.name}")
            fragments[f.name] = f
            _check_block(f.elements, f.interfaces, f"fragment {f.name}", allow_regions=False)

        _check_block(self.elements, self.interfaces, "topology", allow_regions=True)

        for e in self.elements:
            if e.kind != "region":
                continue
            if e.fragment not in fragments:
                raise TopologyError(f"region {e.name}: unknown fragment {e.fragment}")
            if e.count < 1:
                raise TopologyError(f"region {e.name}: count must be >= 1")

        if expand_regions:
            self._expand(fragments)

    def _expand(self, fragments: Dict[str, Fragment]) -> None:
        elements: List[Element] = []
        interfaces: List[Interface] = [
            i for i in self.interfaces
            if (self.get_element(i.element) or Element(i.element)).kind != "region"
        ]
        namemaps = {n.path_name: n for n in self.namemaps}
        taken = {e.name for e in self.elements}

        for e in self.elements:
            if e.kind != "region":
                elements.append(e)
                continue

            frag = fragments[e.fragment]
            names: Dict[str, str] = {}
            computers: List[str] = []

            for idx in range(e.count):
                for fe in frag.elements:
                    new_name = f"{e.name}.{idx}.{fe.name}"
                    if new_name in taken:
                        raise TopologyError(f"region {e.name}: name clash on {new_name}")
                    taken.add(new_name)
                    names[new_name] = fe.name
                    elements.append(Element(new_name, fe.kind, dict(fe.attributes)))
                    if fe.kind == "computer":
                        computers.append(new_name)
                for fi in frag.interfaces:
                    interfaces.append(Interface(
                        f"{e.name}.{idx}.{fi.element}",
                        f"{e.name}.{idx}.{fi.substrate}",
                        dict(fi.attributes),
                    ))

            # outer interfaces on a region attach every expanded computer
            for oi in self.interfaces:
                if oi.element == e.name:
                    for c in computers:
                        interfaces.append(Interface(c, oi.substrate, dict(oi.attributes)))

            namemaps[f"/{e.name}"] = NameMap(f"/{e.name}", names)

        self.elements = elements
        self.interfaces = interfaces
        self.namemaps = list(namemaps.values())

    # --------------------------------------------------
    # isomorphism
    # --------------------------------------------------
    def to_graph(self) -> nx.Graph:
        """
        Element and interface nodes; interface nodes join an element to a
        substrate so parallel connections stay distinct.
        """
        g = nx.Graph()
        for e in self.elements:
            g.add_node(("e", e.name), kind=e.kind, attrs=_structural(e.attributes))
        for idx, i in enumerate(self.interfaces):
            node = ("i", idx)
            g.add_node(node, kind="interface", attrs=_structural(i.attributes))
            g.add_edge(("e", i.element), node)
            g.add_edge(node, ("e", i.substrate))
        return g

    def same_as(self, other: "TopologyDescription") -> None:
        """
        Raise IsomorphismError unless both topologies have the same shape and
        the same non-annotation attributes. Element names are not compared.
        """
        if _structural(self.attributes) != _structural(other.attributes):
            raise IsomorphismError("topology attributes differ")

        g1, g2 = self.to_graph(), other.to_graph()
        if g1.number_of_nodes() != g2.number_of_nodes() or \
                g1.number_of_edges() != g2.number_of_edges():
            raise IsomorphismError("element or interface counts differ")

        def _node_match(a, b):
            return a["kind"] == b["kind"] and a["attrs"] == b["attrs"]

        if not nx.is_isomorphic(g1, g2, node_match=_node_match):
            raise IsomorphismError("topologies are not isomorphic")


def _check_block(
        elements: List[Element],
        interfaces: List[Interface],
        where: str,
        allow_regions: bool,
) -> None:
    by_name: Dict[str, Element] = {}
    for e in elements:
        if e.kind not in ELEMENT_KINDS:
            raise TopologyError(f"{where}: element {e.name} has unknown kind {e.kind}")
        if e.kind == "region" and not allow_regions:
            raise TopologyError(f"{where}: nested region {e.name}")
        if e.name in by_name:
            raise TopologyError(f"{where}: duplicate element {e.name}")
        by_name[e.name] = e

    for i in interfaces:
        elem = by_name.get(i.element)
        sub = by_name.get(i.substrate)
        if elem is None or elem.kind == "substrate":
            raise TopologyError(f"{where}: interface on unknown element {i.element}")
        if sub is None or sub.kind != "substrate":
            raise TopologyError(f"{where}: interface on unknown substrate {i.substrate}")
