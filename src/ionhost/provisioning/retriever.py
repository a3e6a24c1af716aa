"""Archive retrievers: zero-argument callables that produce zip bytes."""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from ionhost.utils.diagnostics import (
    ArchiveStatusError,
    ArchiveTransportError,
    RetrievalError,
    RetrieverChainError,
)

logger = logging.getLogger(__name__)

ArchiveRetriever = Callable[[], bytes]

DEFAULT_DOWNLOAD_TIMEOUT = 120.0


def url_archive_retriever(
    url: str,
    client: httpx.Client | None = None,
    timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
) -> ArchiveRetriever:
    """Return a retriever that downloads the archive with a GET request.

    Args:
        url: Location of the archive.
        client: Optional pre-configured httpx.Client (primarily for tests).
            When omitted, a client is created and closed per retrieval.
        timeout: Request timeout in seconds.
    """

    def retrieve() -> bytes:
        logger.info("Downloading %s", url)
        owned = client is None
        http = client or httpx.Client(timeout=timeout, follow_redirects=True)
        try:
            response = http.get(url, timeout=timeout)
        except httpx.HTTPError as exc:
            raise ArchiveTransportError(f"Failed to download: {exc}", source=url) from exc
        finally:
            if owned:
                http.close()

        if response.status_code != httpx.codes.OK:
            raise ArchiveStatusError(url, response.status_code)
        return response.content

    return retrieve


def file_archive_retriever(path: Path | str) -> ArchiveRetriever:
    """Return a retriever that reads the archive from a local file."""
    archive_path = Path(path)

    def retrieve() -> bytes:
        try:
            return archive_path.read_bytes()
        except OSError as exc:
            raise RetrievalError(f"Failed to load: {exc}", source=str(archive_path)) from exc

    return retrieve


def resource_archive_retriever(package: str, name: str) -> ArchiveRetriever:
    """Return a retriever that reads the archive from a package's embedded resources."""
    source = f"{package}:{name}"

    def retrieve() -> bytes:
        try:
            return resources.files(package).joinpath(name).read_bytes()
        except (OSError, ModuleNotFoundError) as exc:
            raise RetrievalError(f"Failed to load: {exc}", source=source) from exc

    return retrieve


def fallback_archive_retriever(*retrievers: Optional[ArchiveRetriever]) -> ArchiveRetriever:
    """
    Return a retriever that tries each retriever in turn and returns the first
    success. `None` entries are skipped so optional sources can be passed as-is.
    """
    chain = [retriever for retriever in retrievers if retriever is not None]

    def retrieve() -> bytes:
        causes: List[BaseException] = []
        for retriever in chain:
            try:
                return retriever()
            except Exception as exc:
                logger.debug("Archive retriever failed, trying next: %s", exc)
                causes.append(exc)
        raise RetrieverChainError(causes)

    return retrieve
