# aspect_engine/aspects/registry.py
from __future__ import annotations

import random
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Set

from aspect_engine import logs
from aspect_engine.aspects.base import Aspect
from aspect_engine.aspects.default import DefaultAspect
from aspect_engine.aspects.embedder import EmbedderAspect
from aspect_engine.aspects.layout import LayoutAspect
from aspect_engine.aspects.orchestration import OrchestrationAspect
from aspect_engine.aspects.unimplemented import UnimplementedAspect
from aspect_engine.aspects.visualization import VisualizationAspect
from aspect_engine.config.app_config import AppConfig
from aspect_engine.utils.errors import AspectFault, InternalFault

DEFAULT_KEY = "*"

AspectConstructor = Callable[[str], Aspect]


class AspectRegistry:
    """
    AspectRegistry

    Maps an aspect type to the single Aspect instance handling it.

    Implementations are looked up by name in _IMPLEMENTATIONS only.
    No dynamic discovery: adding an implementation is a code change here.

    The table file holds `type implementationName` lines; `*` names the
    implementation used for every unlisted type.
    """

    _IMPLEMENTATIONS: Dict[str, Callable[[str, AppConfig], Aspect]] = {
        "default": lambda t, cfg: DefaultAspect(t),
        "embedder": lambda t, cfg: EmbedderAspect(t),
        "layout": lambda t, cfg: LayoutAspect(t),
        "orchestration": lambda t, cfg: OrchestrationAspect(t, cfg.orchestration),
        "unimplemented": lambda t, cfg: UnimplementedAspect(t),
        "visualization": lambda t, cfg: VisualizationAspect(t),
    }

    def __init__(self, cfg: Optional[AppConfig] = None):
        self.cfg = cfg or AppConfig()

        self._constructors: Dict[str, AspectConstructor] = {}
        self._instances: Dict[str, Aspect] = {}
        self._lock = threading.Lock()

        self._open_tids: Set[int] = set()
        self._tid_lock = threading.Lock()

    # --------------------------------------------------
    # registration
    # --------------------------------------------------
    @classmethod
    def implementation_names(cls) -> list[str]:
        return sorted(cls._IMPLEMENTATIONS)

    def _bind(self, impl_name: str) -> Optional[AspectConstructor]:
        impl = self._IMPLEMENTATIONS.get(impl_name)
        if impl is None:
            return None
        cfg = self.cfg
        return lambda t: impl(t, cfg)

    def register(self, aspect_type: str, constructor: AspectConstructor) -> None:
        with self._lock:
            self._constructors[aspect_type] = constructor
            self._instances.pop(aspect_type, None)

    def register_default(self, constructor: AspectConstructor) -> None:
        self.register(DEFAULT_KEY, constructor)

    def load_table(self, path: str | Path) -> int:
        """
        Read a `type implementationName` table.
        Bad lines are logged and skipped; an unreadable file is logged.
        Returns the number of types registered.
        """
        p = Path(path)
        try:
            text = p.read_text(encoding="utf-8")
        except OSError as e:
            logs.error(f"[AspectRegistry] cannot read aspect table {p}: {e}")
            return 0

        loaded = 0
        for lineno, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            fields = line.split()
            if len(fields) != 2:
                logs.error(f"[AspectRegistry] {p}:{lineno}: bad line: {raw!r}")
                continue

            aspect_type, impl_name = fields
            constructor = self._bind(impl_name)
            if constructor is None:
                logs.error(
                    f"[AspectRegistry] {p}:{lineno}: "
                    f"unknown implementation {impl_name!r} for {aspect_type}"
                )
                continue

            self.register(aspect_type, constructor)
            loaded += 1

        logs.info(f"[AspectRegistry] loaded {loaded} aspect types from {p}")
        return loaded

    # --------------------------------------------------
    # lookup
    # --------------------------------------------------
    def get_instance(self, aspect_type: str) -> Aspect:
        """
        The cached instance for the type, built on first use from the
        type's constructor or, failing that, the default one.
        """
        with self._lock:
            inst = self._instances.get(aspect_type)
            if inst is not None:
                return inst

            constructor = self._constructors.get(aspect_type) or self._constructors.get(DEFAULT_KEY)
            if constructor is None:
                raise InternalFault(f"No aspect implementation for {aspect_type}")

            try:
                inst = constructor(aspect_type)
            except AspectFault:
                raise
            except Exception as e:
                raise InternalFault(f"Cannot construct aspect for {aspect_type}: {e}")

            self._instances[aspect_type] = inst
            logs.debug(f"[AspectRegistry] {aspect_type} -> {inst!r}")
            return inst

    def loaded_instances(self) -> Dict[str, Aspect]:
        with self._lock:
            return dict(self._instances)

    def forget_experiment(self, eid: str) -> None:
        """Drop per-experiment state held by loaded aspects."""
        for inst in self.loaded_instances().values():
            forget = getattr(inst, "forget", None)
            if callable(forget):
                forget(eid)

    # --------------------------------------------------
    # transaction ids
    # --------------------------------------------------
    def get_transaction_id(self) -> int:
        """Random signed 64-bit id not held by any open transaction."""
        with self._tid_lock:
            while True:
                tid = random.getrandbits(64) - 2 ** 63
                if tid not in self._open_tids:
                    self._open_tids.add(tid)
                    return tid

    def release_transaction_id(self, tid: int) -> None:
        with self._tid_lock:
            self._open_tids.discard(tid)

    def open_transaction_ids(self) -> Set[int]:
        with self._tid_lock:
            return set(self._open_tids)

    # --------------------------------------------------
    @classmethod
    def from_config(cls, cfg: AppConfig) -> "AspectRegistry":
        """
        Registry with the configured table loaded and a passthrough
        default for every type the table does not name.
        """
        reg = cls(cfg)
        reg.register_default(DefaultAspect)
        if cfg.storage.aspect_table:
            reg.load_table(cfg.resolve_path(cfg.storage.aspect_table))
        return reg


_default: Optional[AspectRegistry] = None
_default_lock = threading.Lock()


def default_registry(cfg: Optional[AppConfig] = None) -> AspectRegistry:
    """
    Process-wide registry, built on first use from `cfg` (or the default
    configuration file).
    """
    global _default
    with _default_lock:
        if _default is None:
            _default = AspectRegistry.from_config(cfg or AppConfig.load())
        return _default
