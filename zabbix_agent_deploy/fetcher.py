"""
HTTP artifact fetcher
Downloads installer packages and configuration templates
"""

import logging
from typing import Optional

import requests

from .errors import ConfigTemplateError, FetchError
from .rewriter import ConfigTemplate

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class ArtifactFetcher:
    """Thin wrapper around a requests session that raises FetchError"""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60):
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get(self, url: str, stream: bool = False) -> requests.Response:
        try:
            response = self.session.get(url, timeout=self.timeout, stream=stream)
            response.raise_for_status()
            return response
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise FetchError(f"GET {url} returned HTTP {status}", url=url, status_code=status) from e
        except requests.exceptions.RequestException as e:
            raise FetchError(f"GET {url} failed: {e}", url=url) from e

    def get(self, url: str) -> bytes:
        """Fetch the whole body of url"""
        logger.debug(f"Fetching {url}")
        return self._get(url).content

    def download(self, url: str, dest: str) -> int:
        """Stream url into dest, returns the number of bytes written"""
        logger.info(f"⬇️  Downloading {url}")
        response = self._get(url, stream=True)
        written = 0
        try:
            with open(dest, 'wb') as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
                    written += len(chunk)
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Download of {url} interrupted: {e}", url=url) from e
        finally:
            response.close()

        logger.info(f"✅ Saved {written} bytes to {dest}")
        return written

    def fetch_template(self, url: str) -> ConfigTemplate:
        """Fetch a configuration template and split it into lines"""
        body = self.get(url)
        try:
            text = body.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise ConfigTemplateError(f"Template {url} is not valid UTF-8: {e}") from e

        template = ConfigTemplate.from_text(text)
        if not template.lines:
            raise ConfigTemplateError(f"Template {url} is empty")

        logger.info(f"📄 Template loaded: {len(template.lines)} lines")
        return template
