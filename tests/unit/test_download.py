"""Tests for the download stage.

Verifies caching, retry logic, failure wrapping and atomic writes with
an in-memory ``httpx.MockTransport``.  No real network calls are made.
"""

from __future__ import annotations

import unittest
from collections.abc import Callable
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import MagicMock, patch

import httpx

from paris_trees.stages.download import (
    RETRY_BASE_SECONDS,
    DownloadError,
    TransientDownloadError,
    download_dataset,
)

_RealClient = httpx.Client

URL = "https://opendata.example/trees.geojson"
BODY = b'{"type": "FeatureCollection", "features": []}'


def _client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[..., httpx.Client]:
    """Build a replacement for ``httpx.Client`` routed to *handler*."""
    transport = httpx.MockTransport(handler)

    def factory(**kwargs: object) -> httpx.Client:
        return _RealClient(transport=transport, **kwargs)  # type: ignore[arg-type]

    return factory


def _responses(
    *responses: httpx.Response | Exception,
) -> Callable[[httpx.Request], httpx.Response]:
    """Handler replaying *responses* in order (exceptions are raised)."""
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return handler


class TestDownloadDataset(unittest.TestCase):
    """download_dataset with a mocked HTTP transport."""

    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.destination = Path(self._tmp.name) / "raw" / "trees.geojson"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    @patch("paris_trees.stages.download.httpx.Client")
    def test_downloads_body_to_destination(self, mock_client: MagicMock) -> None:
        mock_client.side_effect = _client_factory(_responses(httpx.Response(200, content=BODY)))

        result = download_dataset(URL, self.destination)

        assert result.path == self.destination
        assert result.size_bytes == len(BODY)
        assert result.retries == 0
        assert result.from_cache is False
        assert self.destination.read_bytes() == BODY
        assert not self.destination.with_name("trees.geojson.part").exists()

    @patch("paris_trees.stages.download.httpx.Client")
    def test_existing_file_reused_without_request(self, mock_client: MagicMock) -> None:
        self.destination.parent.mkdir(parents=True)
        self.destination.write_bytes(BODY)

        result = download_dataset(URL, self.destination)

        assert result.from_cache is True
        assert result.size_bytes == len(BODY)
        mock_client.assert_not_called()

    @patch("paris_trees.stages.download.httpx.Client")
    def test_refresh_downloads_again(self, mock_client: MagicMock) -> None:
        self.destination.parent.mkdir(parents=True)
        self.destination.write_bytes(b"old")
        mock_client.side_effect = _client_factory(_responses(httpx.Response(200, content=BODY)))

        result = download_dataset(URL, self.destination, refresh=True)

        assert result.from_cache is False
        assert self.destination.read_bytes() == BODY

    @patch("paris_trees.stages.download.time.sleep")
    @patch("paris_trees.stages.download.httpx.Client")
    def test_retries_server_errors(self, mock_client: MagicMock, mock_sleep: MagicMock) -> None:
        mock_client.side_effect = _client_factory(
            _responses(
                httpx.Response(503),
                httpx.Response(429),
                httpx.Response(200, content=BODY),
            )
        )

        result = download_dataset(URL, self.destination, max_retries=3)

        assert result.retries == 2
        assert mock_sleep.call_count == 2
        mock_sleep.assert_any_call(RETRY_BASE_SECONDS)
        mock_sleep.assert_any_call(RETRY_BASE_SECONDS * 2)

    @patch("paris_trees.stages.download.time.sleep")
    @patch("paris_trees.stages.download.httpx.Client")
    def test_retries_transport_errors(self, mock_client: MagicMock, _sleep: MagicMock) -> None:
        mock_client.side_effect = _client_factory(
            _responses(httpx.ConnectError("refused"), httpx.Response(200, content=BODY))
        )

        result = download_dataset(URL, self.destination, max_retries=1)

        assert result.retries == 1

    @patch("paris_trees.stages.download.time.sleep")
    @patch("paris_trees.stages.download.httpx.Client")
    def test_not_found_fails_immediately(
        self, mock_client: MagicMock, mock_sleep: MagicMock
    ) -> None:
        mock_client.side_effect = _client_factory(_responses(httpx.Response(404)))

        with self.assertRaises(DownloadError) as ctx:
            download_dataset(URL, self.destination, max_retries=3)

        assert ctx.exception.retryable is False
        assert not isinstance(ctx.exception, TransientDownloadError)
        assert ctx.exception.category == "permanent"
        assert "404" in ctx.exception.message
        mock_sleep.assert_not_called()
        assert not self.destination.exists()

    @patch("paris_trees.stages.download.time.sleep")
    @patch("paris_trees.stages.download.httpx.Client")
    def test_retries_exhausted(self, mock_client: MagicMock, _sleep: MagicMock) -> None:
        mock_client.side_effect = _client_factory(
            _responses(httpx.Response(500), httpx.Response(500))
        )

        with self.assertRaises(DownloadError) as ctx:
            download_dataset(URL, self.destination, max_retries=1)

        assert ctx.exception.retryable is False
        assert "2 attempts" in ctx.exception.message
        assert ctx.exception.stage == "download"
        cause = ctx.exception.__cause__
        assert isinstance(cause, TransientDownloadError)
        assert cause.category == "transient"
        assert cause.retryable is True

    @patch("paris_trees.stages.download.time.sleep")
    @patch("paris_trees.stages.download.httpx.Client")
    def test_empty_body_rejected(self, mock_client: MagicMock, _sleep: MagicMock) -> None:
        mock_client.side_effect = _client_factory(_responses(httpx.Response(200, content=b"")))

        with self.assertRaises(DownloadError) as ctx:
            download_dataset(URL, self.destination, max_retries=0)

        assert "empty" in ctx.exception.message.lower()
        assert not self.destination.exists()

    def test_missing_url_rejected(self) -> None:
        with self.assertRaises(DownloadError):
            download_dataset("", self.destination)
