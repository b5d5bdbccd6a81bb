from .model import (
    Element,
    Fragment,
    Interface,
    IsomorphismError,
    NameMap,
    TopologyDescription,
    TopologyError,
)

__all__ = [
    "Element",
    "Fragment",
    "Interface",
    "IsomorphismError",
    "NameMap",
    "TopologyDescription",
    "TopologyError",
]
