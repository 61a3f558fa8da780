"""Fetch the latest metadata release from GitHub and download its data archive."""

import logging
import os
import tempfile
from pathlib import Path

import httpx
from pydantic import BaseModel, ValidationError

from deadly_sync.config import Settings, get_settings
from deadly_sync.core.exceptions import DownloadFailedError, NetworkError
from deadly_sync.core.retry import RetryConfig, retry_async

logger = logging.getLogger(__name__)

GITHUB_HEADERS = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
}


class ReleaseAsset(BaseModel):
    name: str
    browser_download_url: str
    size: int = 0


class ReleaseMetadata(BaseModel):
    """Subset of the GitHub "latest release" response we use."""

    tag_name: str
    assets: list[ReleaseAsset] = []

    def find_data_asset(self, prefix: str = "data", suffix: str = ".zip") -> ReleaseAsset | None:
        """First asset named like ``data*.zip``."""
        for asset in self.assets:
            if asset.name.startswith(prefix) and asset.name.endswith(suffix):
                return asset
        return None


class GitHubReleaseClient:
    """
    Release client backed by httpx.

    Both requests retry transient failures (timeouts, connection errors, 429
    and 5xx) with exponential backoff. Whatever still fails afterwards is
    raised as NetworkError (transport) or DownloadFailedError (HTTP status).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.transport = transport
        self.retry_config = RetryConfig.from_settings(self.settings)

    def _headers(self) -> dict[str, str]:
        headers = dict(GITHUB_HEADERS)
        if self.settings.github_token:
            headers["Authorization"] = f"Bearer {self.settings.github_token}"
        return headers

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=self.transport,
        )

    async def fetch_latest_release(self) -> ReleaseMetadata:
        url = self.settings.releases_api_url
        logger.info(f"Fetching latest release from {url}")

        async def _fetch() -> ReleaseMetadata:
            async with self._client(self.settings.http_request_timeout) as client:
                response = await client.get(url, headers=self._headers())
                response.raise_for_status()
                return ReleaseMetadata.model_validate(response.json())

        try:
            release = await retry_async(_fetch, config=self.retry_config)
        except httpx.HTTPStatusError as e:
            raise DownloadFailedError(e.response.status_code, url) from e
        except (httpx.TransportError, ValueError, ValidationError) as e:
            raise NetworkError(url, e) from e

        logger.info(f"Latest release {release.tag_name} has {len(release.assets)} assets")
        return release

    async def download(self, asset: ReleaseAsset) -> Path:
        """Stream ``asset`` to a temporary file and return its path.

        The caller owns the file and removes it when done.
        """
        url = asset.browser_download_url
        work_dir = self.settings.work_dir
        if work_dir:
            Path(work_dir).mkdir(parents=True, exist_ok=True)
        fd, output_path = tempfile.mkstemp(prefix="deadly-", suffix=".zip", dir=work_dir)
        os.close(fd)

        logger.info(f"Downloading {asset.name} ({asset.size / 1024 / 1024:.1f} MB) to {output_path}")

        async def _download() -> int:
            async with self._client(self.settings.download_timeout) as client:
                async with client.stream("GET", url, headers={"Accept": "application/octet-stream"}) as response:
                    response.raise_for_status()

                    total_size = int(response.headers.get("content-length", 0))
                    downloaded = 0
                    next_report = 10 * 1024 * 1024

                    with open(output_path, "wb") as f:
                        async for chunk in response.aiter_bytes(chunk_size=self.settings.download_chunk_size):
                            f.write(chunk)
                            downloaded += len(chunk)

                            if total_size > 0 and downloaded >= next_report:
                                logger.info(f"Download progress: {downloaded / total_size * 100:.1f}%")
                                next_report += 10 * 1024 * 1024
                    return downloaded

        try:
            downloaded = await retry_async(_download, config=self.retry_config)
        except httpx.HTTPStatusError as e:
            _remove_quietly(output_path)
            raise DownloadFailedError(e.response.status_code, url) from e
        except httpx.TransportError as e:
            _remove_quietly(output_path)
            raise NetworkError(url, e) from e
        except BaseException:
            _remove_quietly(output_path)
            raise

        logger.info(f"Downloaded {output_path} ({downloaded / 1024 / 1024:.1f} MB)")
        return Path(output_path)


def _remove_quietly(path: str):
    try:
        os.remove(path)
    except OSError:
        pass
