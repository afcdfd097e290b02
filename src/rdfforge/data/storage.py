"""On-disk storage for uploaded data source files."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

from rdfforge.core.errors import InfrastructureError

logger = logging.getLogger("rdfforge.data.storage")


class FileStorage:
    """Stores each upload under <root>/<source id>/<file name>."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, source_id: str, filename: str) -> Path:
        return self.root / source_id / (Path(filename).name or "upload")

    async def save(self, source_id: str, filename: str, data: bytes) -> Path:
        path = self.path_for(source_id, filename)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise InfrastructureError(f"Could not store upload: {e}") from e
        logger.info(f"Stored {len(data)} bytes at {path}")
        return path

    async def read_bytes(self, path: str | Path) -> bytes:
        try:
            return await asyncio.to_thread(Path(path).read_bytes)
        except OSError as e:
            raise InfrastructureError(f"Could not read stored file {path}: {e}") from e

    async def read_head(self, path: str | Path, size: int = 64 * 1024) -> bytes:
        def _read() -> bytes:
            with open(path, "rb") as f:
                return f.read(size)

        try:
            return await asyncio.to_thread(_read)
        except OSError as e:
            raise InfrastructureError(f"Could not read stored file {path}: {e}") from e

    async def delete(self, path: str | Path) -> None:
        folder = Path(path).parent
        if folder.parent != self.root:
            return
        await asyncio.to_thread(shutil.rmtree, folder, True)
