"""Download stage: fetch a GeoJSON export into the local cache.

Streams the HTTP response with ``httpx`` into a temporary file next to
the destination and renames it once complete, so an interrupted download
never leaves a truncated file behind.  An existing destination is reused
unless a refresh is requested: this is the only recovery rule of the
document.

Transient failures (transport errors, HTTP 429 and 5xx) are retried;
any other HTTP status fails immediately.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

import httpx

from paris_trees.core.exceptions import PipelineError, TransientError

logger = logging.getLogger("paris_trees.stages.download")

DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT_S = 120.0
RETRY_BASE_SECONDS = 2.0

#: HTTP status codes worth retrying.
RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})

USER_AGENT = "paris-trees/0.1 (+reproducible research appendix)"


class DownloadError(PipelineError):
    """Raised when a dataset cannot be downloaded."""

    default_stage = "download"
    default_code = "DOWNLOAD_FAILED"

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message, retryable=retryable)


class TransientDownloadError(DownloadError, TransientError):
    """Download failure that may succeed on retry."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=True)


@dataclass(frozen=True, slots=True)
class DownloadResult:
    """Outcome of ``download_dataset``.

    Attributes:
        path: Local file holding the dataset.
        size_bytes: File size in bytes.
        duration_s: Time spent downloading (0 when served from cache).
        retries: Retries needed (0 if the first attempt succeeded).
        from_cache: Whether the file already existed and was reused.
    """

    path: Path
    size_bytes: int
    duration_s: float = 0.0
    retries: int = 0
    from_cache: bool = False


def download_dataset(
    url: str,
    destination: Path | str,
    *,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    max_retries: int = DEFAULT_MAX_RETRIES,
    refresh: bool = False,
) -> DownloadResult:
    """Download *url* to *destination* unless it is already cached.

    Args:
        url: HTTP(S) URL of the GeoJSON export.
        destination: Local file path.
        timeout_s: Per-request timeout in seconds.
        max_retries: Retries after a transient failure.
        refresh: Download even if *destination* exists.

    Returns:
        A ``DownloadResult`` describing the local file.

    Raises:
        DownloadError: If the download fails after all retry attempts,
            fails with a non-retryable status, or returns an empty body.
    """
    destination = Path(destination)

    if destination.exists() and not refresh:
        size = destination.stat().st_size
        logger.info("download skipped (cached) | path=%s | size=%d bytes", destination, size)
        return DownloadResult(path=destination, size_bytes=size, from_cache=True)

    if not url:
        msg = f"No URL given for {destination.name}"
        raise DownloadError(msg)

    destination.parent.mkdir(parents=True, exist_ok=True)
    logger.info("download started | url=%s | path=%s", url, destination)

    size, duration, retries = _download_with_retry(
        url, destination, timeout_s=timeout_s, max_retries=max_retries
    )

    logger.info(
        "download completed | path=%s | size=%d bytes | duration=%.2fs | retries=%d",
        destination,
        size,
        duration,
        retries,
    )
    return DownloadResult(
        path=destination, size_bytes=size, duration_s=round(duration, 3), retries=retries
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _download_with_retry(
    url: str,
    destination: Path,
    *,
    timeout_s: float,
    max_retries: int,
) -> tuple[int, float, int]:
    """Call ``_stream_to_file`` with retry logic.

    Returns:
        Tuple of (size_bytes, duration_seconds, retries_used).

    Raises:
        DownloadError: After all retries are exhausted or on
            non-retryable errors.
    """
    last_error: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            start_time = time.monotonic()
            size = _stream_to_file(url, destination, timeout_s=timeout_s)
            return size, time.monotonic() - start_time, attempt
        except TransientDownloadError as exc:
            last_error = exc
            if attempt < max_retries:
                logger.warning(
                    "Download attempt %d/%d failed (retryable) | url=%s | error=%s",
                    attempt + 1,
                    max_retries + 1,
                    url,
                    exc,
                )
                time.sleep(RETRY_BASE_SECONDS * 2**attempt)
            else:
                logger.error(
                    "Download retries exhausted | url=%s | attempts=%d | error=%s",
                    url,
                    max_retries + 1,
                    exc,
                )

    msg = f"Download failed after {max_retries + 1} attempts: {last_error}"
    raise DownloadError(msg, retryable=False) from last_error


def _stream_to_file(url: str, destination: Path, *, timeout_s: float) -> int:
    """Stream *url* into *destination* and return the number of bytes written.

    Raises:
        TransientDownloadError: For transport errors, throttling, server
            errors and empty bodies.
        DownloadError: For other HTTP errors.
    """
    partial = destination.with_name(destination.name + ".part")
    size = 0
    try:
        with (
            httpx.Client(
                timeout=timeout_s,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            ) as client,
            client.stream("GET", url) as response,
        ):
            response.raise_for_status()
            with partial.open("wb") as fh:
                for chunk in response.iter_bytes():
                    fh.write(chunk)
                    size += len(chunk)
    except httpx.HTTPStatusError as exc:
        partial.unlink(missing_ok=True)
        status = exc.response.status_code
        msg = f"HTTP {status} while downloading {url}"
        if status in RETRYABLE_STATUS:
            raise TransientDownloadError(msg) from exc
        raise DownloadError(msg) from exc
    except httpx.TransportError as exc:
        partial.unlink(missing_ok=True)
        msg = f"Transport error while downloading {url}: {exc}"
        raise TransientDownloadError(msg) from exc

    if size == 0:
        partial.unlink(missing_ok=True)
        msg = f"Empty response body from {url}"
        raise TransientDownloadError(msg)

    partial.replace(destination)
    return size
