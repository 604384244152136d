import threading
from unittest.mock import MagicMock, patch

import requests

from capture.interfaces.host_channel import HostChannel
from capture.persistence import PendingResult


def _result(id="abc"):
    return PendingResult(id=id, text="remember this", created_at=1700000000000)


@patch("capture.interfaces.host_channel.requests.post")
def test_posts_completed_capture(mock_post):
    channel = HostChannel("http://host:9000/", background=False)

    channel.notify_capture_completed(_result())

    mock_post.assert_called_once_with(
        "http://host:9000/capture-completed",
        json={"id": "abc", "text": "remember this", "timestamp": 1700000000000},
        timeout=1.0,
    )


@patch("capture.interfaces.host_channel.requests.post")
def test_unreachable_host_is_ignored(mock_post):
    mock_post.side_effect = requests.ConnectionError("refused")
    channel = HostChannel("http://host:9000", background=False)

    assert channel._post_completed(_result()) is False
    channel.notify_capture_completed(_result())


@patch("capture.interfaces.host_channel.requests.post")
def test_http_error_is_ignored(mock_post):
    mock_post.return_value.raise_for_status.side_effect = requests.HTTPError("500")
    channel = HostChannel("http://host:9000", background=False)
    assert channel._post_completed(_result()) is False


@patch("capture.interfaces.host_channel.requests.post")
def test_disabled_without_url(mock_post):
    channel = HostChannel(None, background=False)
    assert not channel.enabled
    channel.notify_capture_completed(_result())
    mock_post.assert_not_called()


def test_background_notifies_do_not_share_a_session(monkeypatch):
    done = threading.Event()
    calls = []

    def fake_post(url, json, timeout):
        calls.append(json["id"])
        if len(calls) == 3:
            done.set()
        return MagicMock()

    monkeypatch.setattr(requests, "Session", MagicMock(side_effect=AssertionError("no shared session")))
    monkeypatch.setattr("capture.interfaces.host_channel.requests.post", fake_post)

    channel = HostChannel("http://host:9000")
    for i in range(3):
        channel.notify_capture_completed(_result(id=f"r{i}"))

    assert done.wait(2.0)
    assert sorted(calls) == ["r0", "r1", "r2"]
