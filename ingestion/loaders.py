from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson
import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from common.config import ROOT_DIR, yaml_config
from common.logger import get_logger

log = get_logger(__name__)

STATS_FILE = "stats.json"
CHUNKS_FILE = "chunks.json"
PROGRAM_META_FILE = "program_meta.json"


class DataUnavailableError(RuntimeError):
    """A required ingestion file could not be fetched."""


class DataSource:
    """Where the static ingestion files (stats, chunks, program meta) live."""

    location: str = ""

    def fetch_text(self, name: str) -> str:
        raise NotImplementedError

    def fetch_json(self, name: str) -> Any:
        text = self.fetch_text(name)
        try:
            return orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise DataUnavailableError(f"{name} is not valid JSON: {e}") from e


class HttpDataSource(DataSource):
    def __init__(
        self,
        base_url: str,
        timeout: int | None = None,
        user_agent: str | None = None,
    ):
        self.location = base_url.rstrip("/")
        self.timeout = timeout or yaml_config.app.timeout
        self.user_agent = user_agent or yaml_config.app.user_agent

    @retry(
        retry=retry_if_exception_type(requests.RequestException),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    def _fetch(self, url: str) -> requests.Response:
        """Download URL with retry logic."""
        resp = requests.get(
            url,
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent, "Cache-Control": "no-store"},
        )
        resp.raise_for_status()
        return resp

    def fetch_text(self, name: str) -> str:
        url = f"{self.location}/{name}"
        try:
            resp = self._fetch(url)
        except requests.RequestException as e:
            raise DataUnavailableError(f"{name} not available from {url}: {e}") from e
        # Static hosts answer unknown paths with an HTML fallback page
        content_type = resp.headers.get("Content-Type", "")
        if "html" in content_type or resp.text.lstrip()[:9].lower() == "<!doctype":
            raise DataUnavailableError(f"{name} not available from {url}: got an HTML page")
        log.info("Fetched %s (%d bytes)", url, len(resp.content))
        return resp.text


class DirectoryDataSource(DataSource):
    def __init__(self, directory: Path | str):
        path = Path(directory)
        self.directory = path if path.is_absolute() else ROOT_DIR / path
        self.location = str(self.directory)

    def fetch_text(self, name: str) -> str:
        path = self.directory / name
        if not path.is_file():
            raise DataUnavailableError(f"{name} not found in {self.directory}")
        return path.read_text(encoding="utf-8")


def make_data_source(location: str | None = None) -> DataSource:
    location = location or yaml_config.app.data_url
    if location.startswith(("http://", "https://")):
        return HttpDataSource(location)
    return DirectoryDataSource(location)
