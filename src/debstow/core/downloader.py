from __future__ import annotations

"""
HTTP download manager used when mirroring upstream repositories.

Handles SSL/TLS, proxies and bounded retries with exponential backoff so the
mirror crawler only deals with URLs and local paths.
"""

import logging
import tempfile
import time
from pathlib import Path

import requests

from debstow.core.config import DownloadConfig, ProxyConfig, SSLConfig
from debstow.core.errors import DownloadError

logger = logging.getLogger(__name__)


class DownloadManager:
    """Download files and documents over HTTP(S) with retries."""

    def __init__(
        self,
        download_config: DownloadConfig | None = None,
        proxy_config: ProxyConfig | None = None,
        ssl_config: SSLConfig | None = None,
        session: requests.Session | None = None,
        sleep=time.sleep,
    ):
        """Initialize download manager.

        Args:
            download_config: Download configuration (timeout, retries, etc.)
            proxy_config: Optional proxy configuration
            ssl_config: Optional SSL/TLS configuration
            session: Optional pre-configured requests session
            sleep: Sleep function used between retries
        """
        self.download_config = download_config or DownloadConfig()
        self.proxy_config = proxy_config
        self.ssl_config = ssl_config
        self.sleep = sleep
        self.session = session or self._setup_session()

    def _setup_session(self) -> requests.Session:
        """Setup requests session with SSL and proxy configuration.

        Returns:
            Configured requests session
        """
        session = requests.Session()

        if self.proxy_config:
            proxies = {}
            if self.proxy_config.http_proxy:
                proxies["http"] = self.proxy_config.http_proxy
            if self.proxy_config.https_proxy:
                proxies["https"] = self.proxy_config.https_proxy
            session.proxies.update(proxies)

        if self.ssl_config:
            if not self.ssl_config.verify:
                # Disable SSL verification (not recommended)
                session.verify = False
            elif self.ssl_config.ca_bundle:
                session.verify = self.ssl_config.ca_bundle

            # Client certificate for mTLS
            if self.ssl_config.client_cert:
                if self.ssl_config.client_key:
                    session.cert = (self.ssl_config.client_cert, self.ssl_config.client_key)
                else:
                    session.cert = self.ssl_config.client_cert

        return session

    def _with_retries(self, url: str, action):
        attempts = self.download_config.retry_attempts + 1
        delay = self.download_config.retry_backoff

        for attempt in range(attempts):
            try:
                return action()
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                # Client errors will not go away by retrying
                if status is not None and status < 500:
                    raise
                if attempt + 1 >= attempts:
                    raise
                logger.warning(f"Request for {url} failed (attempt {attempt + 1}/{attempts}): {e}")
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt + 1 >= attempts:
                    raise
                logger.warning(f"Request for {url} failed (attempt {attempt + 1}/{attempts}): {e}")

            self.sleep(delay)
            delay *= 2

        raise RuntimeError(f"Request failed for {url}")

    def fetch(self, url: str) -> bytes | None:
        """Fetch a document into memory.

        Args:
            url: Source URL

        Returns:
            Response body, or None if the server answered 404

        Raises:
            DownloadError: On other download errors
        """

        def _get() -> bytes | None:
            response = self.session.get(url, timeout=self.download_config.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.content

        logger.debug(f"Fetching {url}")
        try:
            return self._with_retries(url, _get)
        except requests.RequestException as e:
            raise DownloadError(f"Failed to fetch {url}: {e}") from e

    def fetch_text(self, url: str) -> str | None:
        """Fetch a document and decode it as UTF-8."""
        content = self.fetch(url)
        if content is None:
            return None
        return content.decode("utf-8", errors="replace")

    def download_file(self, url: str, dest: Path) -> Path:
        """Download a single file with retries.

        The body is streamed to a temporary file next to ``dest`` and moved
        into place once complete.

        Args:
            url: Source URL
            dest: Destination path

        Returns:
            Path to downloaded file

        Raises:
            DownloadError: On download errors
        """
        dest.parent.mkdir(parents=True, exist_ok=True)

        def _download() -> Path:
            response = self.session.get(url, stream=True, timeout=self.download_config.timeout)
            response.raise_for_status()

            with tempfile.NamedTemporaryFile(
                delete=False, dir=dest.parent, suffix=dest.suffix
            ) as tmp_file:
                tmp_path = Path(tmp_file.name)
                try:
                    for chunk in response.iter_content(chunk_size=65536):
                        tmp_file.write(chunk)
                except requests.RequestException:
                    tmp_file.close()
                    tmp_path.unlink(missing_ok=True)
                    raise

            tmp_path.replace(dest)
            return dest

        logger.debug(f"Downloading {url} -> {dest}")
        try:
            return self._with_retries(url, _download)
        except requests.RequestException as e:
            raise DownloadError(f"Failed to download {url}: {e}") from e
