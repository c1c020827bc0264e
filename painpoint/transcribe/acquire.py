import asyncio
import logging
from pathlib import Path
from urllib.parse import urlparse

import httpx

from painpoint.errors import DownloadError, IntegrityError, StorageError
from painpoint.records import ObjectStore

logger = logging.getLogger(__name__)

_DOWNLOAD_TIMEOUT = httpx.Timeout(30.0, read=300.0)


def local_name_for(source_ref: str) -> str:
    name = Path(urlparse(source_ref).path).name
    return name or "audio"


async def _stream_to_file(client: httpx.AsyncClient, url: str, out_file: Path) -> None:
    try:
        async with client.stream("GET", url) as response:
            if not response.is_success:
                raise DownloadError(
                    f"Failed to download file: HTTP {response.status_code} {response.reason_phrase}"
                )
            with out_file.open("wb") as f:
                async for chunk in response.aiter_bytes():
                    await asyncio.to_thread(f.write, chunk)
    except httpx.HTTPError as err:
        raise DownloadError(f"Failed to download file: {type(err).__name__}: {err}") from err


async def acquire(
    object_store: ObjectStore,
    source_ref: str,
    workdir: Path,
    *,
    ttl_s: int = 600,
    client: httpx.AsyncClient | None = None,
) -> Path:
    """Download the stored audio object into workdir and return its local path."""
    try:
        url = await object_store.signed_download_url(source_ref, ttl_s)
    except StorageError:
        raise
    except Exception as err:
        raise StorageError(f"Could not generate download URL for {source_ref}: {err}") from err

    out_file = workdir / local_name_for(source_ref)
    logger.info(f"Downloading {source_ref} to: {out_file}")
    if client is not None:
        await _stream_to_file(client, url, out_file)
    else:
        async with httpx.AsyncClient(timeout=_DOWNLOAD_TIMEOUT, follow_redirects=True) as owned:
            await _stream_to_file(owned, url, out_file)

    if not out_file.is_file() or out_file.stat().st_size == 0:
        raise IntegrityError(f"Downloaded audio file is missing or empty: {out_file.name}")

    logger.info(f"Downloaded audio file ({out_file.stat().st_size / (1024 * 1024):.2f}MB)")
    return out_file
