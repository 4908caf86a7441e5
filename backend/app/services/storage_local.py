"""
Local Asset Storage

Writes generated media (reward voice lines, portraits) under MEDIA_ROOT and
returns URLs under MEDIA_BASE_URL, which main.py mounts as static files.
"""
import asyncio
import logging
import os
import re
import time
import uuid
from pathlib import Path

from ..config import settings
from .ai_base import AssetStorage

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "audio/mpeg": ".mp3",
    "image/png": ".png",
    "image/jpeg": ".jpg",
}


def generate_asset_key(prefix: str, name: str | None = None) -> str:
    """e.g. portraits/luna_1718000000000_3f2a9c1b"""
    safe = re.sub(r"[^a-z0-9]", "_", (name or "asset").lower()) or "asset"
    return f"{prefix}/{safe}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class LocalAssetStorage(AssetStorage):
    """Filesystem-backed storage"""

    def __init__(self, root: str | None = None, base_url: str | None = None):
        self.root = Path(root or settings.media_root).resolve()
        self.base_url = (base_url or settings.media_base_url).rstrip("/")

    def _path_for_url(self, url: str) -> Path | None:
        if not url or not url.startswith(self.base_url + "/"):
            return None
        rel = url[len(self.base_url) + 1:]
        path = (self.root / rel).resolve()
        # Refuse anything that escapes the media root
        if self.root not in path.parents:
            return None
        return path

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    async def save(self, key: str, data: bytes, content_type: str) -> str:
        ext = _EXTENSIONS.get(content_type, "")
        rel = key if key.endswith(ext) else key + ext
        path = self.root / rel
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, path, data)
        logger.info("[Storage] saved %s (%d bytes)", rel, len(data))
        return f"{self.base_url}/{rel}"

    async def delete(self, url: str) -> bool:
        path = self._path_for_url(url)
        if path is None:
            return False
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        logger.info("[Storage] deleted %s", path)
        return True


# Global singleton
local_asset_storage = LocalAssetStorage()
