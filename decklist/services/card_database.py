"""
Card database download service.

Fetches Scryfall's Oracle Cards bulk data in two steps:

1. GET the bulk-data metadata for the configured type, which names the
   current download URI.
2. Stream the bulk JSON into a temporary file inside the database directory.

The temporary file is handed to the snapshot manager, which validates it
and commits it with an atomic rename. Nothing here touches the catalog.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import httpx

from decklist.models.failure import DownloadError
from decklist.parsers.scryfall import BulkDataInfo

logger = logging.getLogger(__name__)

SCRYFALL_ORACLE_CARDS = "https://api.scryfall.com/bulk-data/oracle-cards"
DEFAULT_USER_AGENT = "decklist/0.1"

PARTIAL_PREFIX = ".download-"
PARTIAL_SUFFIX = ".json.part"


@dataclass(frozen=True, slots=True)
class StagedDownload:
    """
    A downloaded bulk file not yet committed to the catalog.

    Attributes:
        path: Temporary file inside the database directory
        source: URL the data came from
        fetched_at: When the download started
    """

    path: Path
    source: str
    fetched_at: datetime


async def fetch_bulk_info(
    client: httpx.AsyncClient,
    bulk_data_url: str = SCRYFALL_ORACLE_CARDS,
) -> BulkDataInfo:
    """
    Fetch bulk-data metadata.

    Raises:
        DownloadError: If the request fails or names no download URI
    """
    try:
        response = await client.get(bulk_data_url, headers={"Accept": "application/json"})
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        raise DownloadError(
            f"Failed to fetch bulk data info: HTTP {e.response.status_code}"
        ) from e
    except httpx.RequestError as e:
        raise DownloadError(f"Failed to fetch bulk data info: {e}") from e
    except ValueError as e:
        raise DownloadError("Bulk data info is not valid JSON") from e

    download_uri = data.get("download_uri") if isinstance(data, dict) else None
    if not download_uri:
        raise DownloadError("Could not find bulk data download URI")

    return BulkDataInfo(
        download_uri=str(download_uri),
        updated_at=str(data.get("updated_at", "")),
        size=int(data.get("size") or 0),
    )


async def download_snapshot(
    dest_dir: Path,
    *,
    bulk_data_url: str = SCRYFALL_ORACLE_CARDS,
    user_agent: str = DEFAULT_USER_AGENT,
    client: httpx.AsyncClient | None = None,
) -> StagedDownload:
    """
    Download the latest bulk data into a temporary file in `dest_dir`.

    Args:
        dest_dir: Database directory; the temp file is created here so the
            final rename stays on one filesystem
        bulk_data_url: Bulk-data metadata endpoint
        user_agent: User-Agent header (Scryfall requires one)
        client: Optional client to reuse

    Returns:
        StagedDownload describing the temp file.

    Raises:
        DownloadError: If either request fails
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    fetched_at = datetime.now(UTC)
    headers = {"User-Agent": user_agent}

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=30.0, headers=headers, follow_redirects=True)

    fd, tmp_name = tempfile.mkstemp(dir=dest_dir, prefix=PARTIAL_PREFIX, suffix=PARTIAL_SUFFIX)
    tmp_path = Path(tmp_name)
    try:
        info = await fetch_bulk_info(client, bulk_data_url)
        logger.info("Downloading %s (%d bytes)", info["download_uri"], info["size"])

        try:
            async with client.stream(
                "GET",
                info["download_uri"],
                headers={**headers, "Accept": "*/*"},
                timeout=300.0,
            ) as response:
                response.raise_for_status()
                with os.fdopen(fd, "wb") as f:
                    fd = -1
                    async for chunk in response.aiter_bytes(8192):
                        f.write(chunk)
        except httpx.HTTPStatusError as e:
            raise DownloadError(
                f"Failed to download bulk data: HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise DownloadError(f"Failed to download bulk data: {e}") from e
        except OSError as e:
            raise DownloadError(f"Failed to write bulk data to {tmp_path}: {e}") from e
    except BaseException:
        if fd != -1:
            os.close(fd)
        tmp_path.unlink(missing_ok=True)
        raise
    finally:
        if owns_client:
            await client.aclose()

    return StagedDownload(path=tmp_path, source=info["download_uri"], fetched_at=fetched_at)
