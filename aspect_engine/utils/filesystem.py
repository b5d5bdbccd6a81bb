#!filepath: aspect_engine/utils/filesystem.py
import shutil
from pathlib import Path

from aspect_engine.utils.logger import logs


class FileSystem:
    """
    Filesystem helpers
    - create directories on demand
    - atomic write (tmp file -> rename)
    - read whole files
    - delete files / directory trees
    """

    @staticmethod
    def ensure_dir(path: str | Path) -> Path:
        """
        Create the directory (and parents) if missing.
        """
        p = Path(path)
        if not p.exists():
            p.mkdir(parents=True, exist_ok=True)
            logs.debug(f"[FS] created dir: {p}")
        return p

    @staticmethod
    def safe_write(path: str | Path, data: bytes) -> None:
        """
        Atomic write:
            1) write a sibling tmp file
            2) rename over the destination
        """
        path = Path(path)
        FileSystem.ensure_dir(path.parent)

        tmp_path = path.with_name(path.name + ".tmp")

        with open(tmp_path, "wb") as f:
            f.write(data)

        tmp_path.replace(path)
        logs.debug(f"[FS] wrote {len(data)} bytes: {path}")

    @staticmethod
    def read_bytes(path: str | Path) -> bytes:
        return Path(path).read_bytes()

    @staticmethod
    def remove(path: str | Path) -> None:
        """
        Delete a file or a directory tree. Missing paths are ignored.
        """
        p = Path(path)

        if not p.exists():
            logs.debug(f"[FS] nothing to delete: {p}")
            return

        if p.is_dir():
            shutil.rmtree(p)
            logs.debug(f"[FS] deleted dir: {p}")
        else:
            p.unlink()
            logs.debug(f"[FS] deleted file: {p}")

    @staticmethod
    def clean_dir(path: str | Path) -> bool:
        """
        Best-effort recursive delete. Errors are logged, never raised.
        Returns True when the path no longer exists.
        """
        p = Path(path)
        if not p.exists():
            return True

        try:
            if p.is_dir():
                shutil.rmtree(p)
            else:
                p.unlink()
        except OSError as e:
            logs.warning(f"[FS] cannot delete {p}: {e}")

        return not p.exists()
