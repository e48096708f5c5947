"""FileBackend — CollectionBackend implementation over a local data directory.

One JSON file per collection (``products`` -> ``products.json`` unless a
custom mapping is given). Writes go to a temporary file in the same
directory and are moved into place with ``os.replace``, so readers see
either the old or the new content, never a torn file.

Blocking file calls run in a worker thread via ``asyncio.to_thread``; the
event loop is never blocked on disk.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path


class FileBackend:
    """Flat-file persistence for collections.

    Implements the storefront ``CollectionBackend`` protocol:

    - ``read_text(name) -> str | None`` (None when the file does not exist)
    - ``write_text(name, text)`` (atomic whole-file overwrite)
    - ``ensure_ready()`` (creates the data directory)
    """

    def __init__(
        self,
        data_dir: str | os.PathLike[str],
        files: Mapping[str, str] | None = None,
    ) -> None:
        self._data_dir = Path(data_dir)
        self._files: dict[str, str] = dict(files or {})

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def path_for(self, name: str) -> Path:
        """Return the backing file path for a collection name."""
        return self._data_dir / self._files.get(name, f"{name}.json")

    # -- CollectionBackend protocol ------------------------------------------

    async def ensure_ready(self) -> None:
        await asyncio.to_thread(self._data_dir.mkdir, parents=True, exist_ok=True)

    async def read_text(self, name: str) -> str | None:
        return await asyncio.to_thread(self._read_sync, self.path_for(name))

    async def write_text(self, name: str, text: str) -> None:
        await asyncio.to_thread(self._write_sync, self.path_for(name), text)

    # -- blocking helpers (worker thread) ------------------------------------

    @staticmethod
    def _read_sync(path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    @staticmethod
    def _write_sync(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
