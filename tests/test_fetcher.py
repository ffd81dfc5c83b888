"""Tests for segment fetching (mocked HTTP session, no network)."""

from unittest.mock import MagicMock

import requests

from quadcast.fetcher import FetchReason, SegmentFetcher
from quadcast.segment_store import SegmentStore


def _response(status: int, content: bytes = b"") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.content = content
    return resp


def _make_fetcher(tmp_path, session, quadrant=2, clock=None):
    store = SegmentStore(tmp_path, quadrant=quadrant)
    kwargs = {"clock": clock} if clock else {}
    fetcher = SegmentFetcher(
        "https://cdn.example.com/video/", quadrant, store,
        ext="txt", timeout=5, user_agent="test-agent", session=session, **kwargs,
    )
    return fetcher, store


class TestUrlFor:
    """Test per-quadrant URL construction."""

    def test_url_format(self, tmp_path):
        fetcher, _ = _make_fetcher(tmp_path, MagicMock())
        assert fetcher.url_for(7) == "https://cdn.example.com/video/7_q2.txt"

    def test_quadrant_zero(self, tmp_path):
        fetcher, _ = _make_fetcher(tmp_path, MagicMock(), quadrant=0)
        assert fetcher.url_for(1).endswith("1_q0.txt")

    def test_user_agent_header(self, tmp_path):
        session = MagicMock()
        session.headers = {}
        _make_fetcher(tmp_path, session)
        assert session.headers["User-Agent"] == "test-agent"


class TestFetch:
    """Test fetch outcomes."""

    def test_success_writes_body(self, tmp_path):
        session = MagicMock()
        session.get.return_value = _response(200, b"4 2\naaaa\nbbbb\n")
        fetcher, store = _make_fetcher(tmp_path, session)
        result = fetcher.fetch(1, store.current_path)
        assert result.ok
        assert result.reason is FetchReason.OK
        assert result.status == 200
        assert store.current_path.read_bytes() == b"4 2\naaaa\nbbbb\n"
        session.get.assert_called_once_with("https://cdn.example.com/video/1_q2.txt", timeout=5)

    def test_records_duration(self, tmp_path):
        session = MagicMock()
        session.get.return_value = _response(200, b"1 1\n0\n")
        ticks = iter([10.0, 12.5])
        fetcher, store = _make_fetcher(tmp_path, session, clock=lambda: next(ticks))
        result = fetcher.fetch(1, store.current_path)
        assert result.duration == 2.5
        assert fetcher.last_fetch_duration == 2.5

    def test_404_is_not_found(self, tmp_path):
        session = MagicMock()
        session.get.return_value = _response(404)
        fetcher, store = _make_fetcher(tmp_path, session)
        result = fetcher.fetch(3, store.next_path)
        assert not result.ok
        assert result.reason is FetchReason.NOT_FOUND
        assert result.status == 404
        assert not store.next_path.exists()

    def test_server_error_is_not_found(self, tmp_path):
        session = MagicMock()
        session.get.return_value = _response(503)
        fetcher, store = _make_fetcher(tmp_path, session)
        assert fetcher.fetch(3, store.next_path).reason is FetchReason.NOT_FOUND

    def test_connection_error_does_not_raise(self, tmp_path):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("unreachable")
        fetcher, store = _make_fetcher(tmp_path, session)
        result = fetcher.fetch(1, store.current_path)
        assert not result.ok
        assert result.reason is FetchReason.TRANSPORT_ERROR
        assert result.status is None

    def test_timeout_does_not_raise(self, tmp_path):
        session = MagicMock()
        session.get.side_effect = requests.Timeout()
        fetcher, store = _make_fetcher(tmp_path, session)
        assert fetcher.fetch(1, store.current_path).reason is FetchReason.TRANSPORT_ERROR

    def test_storage_error_is_transport_error(self, tmp_path):
        session = MagicMock()
        session.get.return_value = _response(200, b"1 1\n0\n")
        fetcher, store = _make_fetcher(tmp_path, session)
        store.write = MagicMock(side_effect=OSError("disk full"))
        result = fetcher.fetch(1, store.current_path)
        assert not result.ok
        assert result.reason is FetchReason.TRANSPORT_ERROR

    def test_close_closes_session(self, tmp_path):
        session = MagicMock()
        fetcher, _ = _make_fetcher(tmp_path, session)
        fetcher.close()
        session.close.assert_called_once()
