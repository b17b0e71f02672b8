"""Artifact download with a local cache."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import aiohttp

from devlauncher.exceptions import InstallError

logger = logging.getLogger(__name__)


class Downloader:
    """Fetch installer artifacts over plain HTTPS GET.

    A file already present at the destination is reused as-is. Data is
    streamed to ``<dest>.part`` and renamed on completion, so an interrupted
    download never looks cached.
    """

    def __init__(self, cache_dir: str | Path, timeout: int = 900, chunk_size: int = 1 << 16):
        self.cache_dir = Path(cache_dir)
        self.timeout = timeout
        self.chunk_size = chunk_size

    def cached_path(self, url: str) -> Path:
        return self.cache_dir / url.rstrip("/").split("/")[-1]

    def fetch(self, url: str, tool: str) -> Path:
        dest = self.cached_path(url)
        if dest.exists() and dest.stat().st_size > 0:
            logger.info("Using cached %s", dest)
            return dest
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        return asyncio.run(self._download(url, dest, tool))

    async def _download(self, url: str, dest: Path, tool: str) -> Path:
        partial = dest.with_name(dest.name + ".part")
        logger.info("Downloading %s", url)
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout)) as resp:
                    if resp.status != 200:
                        raise InstallError(tool, f"HTTP {resp.status}", artifact=dest.name, url=url)
                    size = 0
                    with open(partial, "wb") as fh:
                        async for chunk in resp.content.iter_chunked(self.chunk_size):
                            fh.write(chunk)
                            size += len(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            partial.unlink(missing_ok=True)
            raise InstallError(tool, f"download failed: {e}", artifact=dest.name, url=url) from e
        except InstallError:
            partial.unlink(missing_ok=True)
            raise

        partial.replace(dest)
        logger.info(f"Downloaded {size} bytes to {dest}")
        return dest

    @staticmethod
    def discard(path: Path) -> None:
        """Remove a used artifact; already being gone is fine."""
        path.unlink(missing_ok=True)
        logger.debug("Removed %s", path)
