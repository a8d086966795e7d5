"""Local-disk storage for rendered permit files."""

import asyncio
import logging
import re
import secrets
import time
from pathlib import Path

logger = logging.getLogger(__name__)

# Keys are generated here; anything else is refused to keep reads inside the upload dir
FILE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+\.pdf$")


class PermitFileStorage:
    """Stores permit PDFs under `upload_dir` as `permit_{epoch_ms}_{16 hex}.pdf`."""

    def __init__(self, upload_dir: str | Path):
        self.upload_dir = Path(upload_dir)

    @staticmethod
    def new_key(prefix: str = "permit") -> str:
        return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(8)}.pdf"

    def _path(self, key: str) -> Path | None:
        if not key or not FILE_KEY_PATTERN.match(key):
            return None
        return self.upload_dir / key

    def _write(self, path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    async def save(self, content: bytes) -> str:
        key = self.new_key()
        await asyncio.to_thread(self._write, self.upload_dir / key, content)
        logger.info(f"Saved permit file {key} ({len(content)} bytes)")
        return key

    async def read(self, key: str) -> bytes | None:
        """File contents, or None when the key is empty, invalid or missing."""
        path = self._path(key)
        if path is None:
            return None
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            logger.warning(f"Permit file {key} not found in {self.upload_dir}")
            return None
