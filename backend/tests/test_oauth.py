from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from recorder_api.oauth import (
    GoogleProvider,
    OAuthError,
    OAuthProvider,
    ProviderUnauthorizedError,
    ZoomProvider,
    make_state,
    verify_state,
)


class _FakeResponse:
    def __init__(self, status_code: int = 200, payload: object | None = None, text: str | None = None) -> None:
        self.status_code = status_code
        if text is not None:
            self.text = text
        else:
            self.text = "" if payload is None else json.dumps(payload)
        self.content = self.text.encode()

    def json(self) -> object:
        return json.loads(self.text)


class _Recorder:
    def __init__(self, response: _FakeResponse) -> None:
        self.response = response
        self.calls: list[tuple[str, str, dict]] = []

    def __call__(self, method: str, url: str, **kwargs):  # type: ignore[no-untyped-def]
        self.calls.append((method, url, kwargs))
        return self.response


def _google() -> GoogleProvider:
    return GoogleProvider(client_id="gid", client_secret="gsecret", redirect_uri="http://localhost/cb")


def _zoom() -> ZoomProvider:
    return ZoomProvider(client_id="zid", client_secret="zsecret", redirect_uri="http://localhost/cb")


def test_base_provider_cannot_be_instantiated() -> None:
    with pytest.raises(TypeError):
        OAuthProvider(client_id="id", client_secret="secret", redirect_uri="http://localhost/cb")  # type: ignore[abstract]


class _PartialProvider(OAuthProvider):
    name = "partial"

    def fetch_profile(self, access_token: str):  # type: ignore[no-untyped-def]
        raise AssertionError("not called")


def test_provider_missing_token_request_cannot_be_instantiated() -> None:
    with pytest.raises(TypeError):
        _PartialProvider(client_id="id", client_secret="secret", redirect_uri="http://localhost/cb")  # type: ignore[abstract]


def test_state_is_bound_to_user_and_provider() -> None:
    state = make_state("secret", "user-1", "google")

    assert verify_state("secret", state, "user-1", "google")
    assert not verify_state("secret", state, "user-2", "google")
    assert not verify_state("secret", state, "user-1", "zoom")
    assert not verify_state("other-secret", state, "user-1", "google")
    assert not verify_state("secret", "garbage", "user-1", "google")


def test_google_authorization_url_requests_offline_access() -> None:
    url = _google().authorization_url("abc.def")
    query = parse_qs(urlparse(url).query)

    assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
    assert query["client_id"] == ["gid"]
    assert query["access_type"] == ["offline"]
    assert query["prompt"] == ["consent"]
    assert query["state"] == ["abc.def"]
    assert "https://www.googleapis.com/auth/calendar.readonly" in query["scope"][0].split(" ")


def test_unconfigured_provider_reports_it() -> None:
    provider = GoogleProvider(client_id="", client_secret="", redirect_uri="http://localhost/cb")

    assert not provider.configured
    assert _google().configured


def test_zoom_exchange_code_uses_basic_auth(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder(_FakeResponse(payload={"access_token": "at", "refresh_token": "rt", "expires_in": 3600}))
    monkeypatch.setattr("recorder_api.oauth.requests.request", recorder)

    tokens = _zoom().exchange_code("the-code")

    method, url, kwargs = recorder.calls[0]
    assert (method, url) == ("POST", "https://zoom.us/oauth/token")
    assert kwargs["auth"] == ("zid", "zsecret")
    assert kwargs["data"] == {
        "grant_type": "authorization_code",
        "code": "the-code",
        "redirect_uri": "http://localhost/cb",
    }
    assert tokens.access_token == "at"
    assert tokens.refresh_token == "rt"
    assert tokens.expires_at is not None
    assert tokens.expires_at > datetime.now(timezone.utc) + timedelta(minutes=59)


def test_refresh_keeps_previous_refresh_token(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder(_FakeResponse(payload={"access_token": "fresh", "expires_in": 60}))
    monkeypatch.setattr("recorder_api.oauth.requests.request", recorder)

    tokens = _google().refresh("keep-me")

    assert recorder.calls[0][2]["json"]["grant_type"] == "refresh_token"
    assert tokens.access_token == "fresh"
    assert tokens.refresh_token == "keep-me"


def test_token_response_without_access_token_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("recorder_api.oauth.requests.request", _Recorder(_FakeResponse(payload={"error": "x"})))

    with pytest.raises(OAuthError, match="missing access_token"):
        _google().exchange_code("code")


def test_unauthorized_response_raises_dedicated_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("recorder_api.oauth.requests.request", _Recorder(_FakeResponse(status_code=401, payload={})))

    with pytest.raises(ProviderUnauthorizedError):
        _zoom().fetch_profile("expired")


def test_server_error_and_transport_failure_raise_oauth_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("recorder_api.oauth.requests.request", _Recorder(_FakeResponse(status_code=500, text="oops")))
    with pytest.raises(OAuthError, match="status 500"):
        _zoom().fetch_profile("token")

    def _boom(*args, **kwargs):  # type: ignore[no-untyped-def]
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr("recorder_api.oauth.requests.request", _boom)
    with pytest.raises(OAuthError, match="transport failure"):
        _zoom().fetch_profile("token")


def test_google_upcoming_keeps_only_conference_events(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder(
        _FakeResponse(
            payload={
                "items": [
                    {
                        "id": "evt-1",
                        "summary": "Design review",
                        "start": {"dateTime": "2026-03-02T09:00:00Z"},
                        "end": {"dateTime": "2026-03-02T10:00:00Z"},
                        "conferenceData": {"entryPoints": [{"uri": "https://meet.google.com/abc-defg-hij"}]},
                    },
                    {
                        "id": "evt-2",
                        "summary": "Lunch",
                        "start": {"dateTime": "2026-03-02T12:00:00Z"},
                        "end": {"dateTime": "2026-03-02T13:00:00Z"},
                    },
                ]
            }
        )
    )
    monkeypatch.setattr("recorder_api.oauth.requests.request", recorder)

    meetings = _google().list_upcoming("token", datetime(2026, 3, 1, tzinfo=timezone.utc))

    assert len(meetings) == 1
    meeting = meetings[0]
    assert meeting.provider == "google_meet"
    assert meeting.provider_meeting_id == "evt-1"
    assert meeting.meeting_link == "https://meet.google.com/abc-defg-hij"
    assert meeting.start == datetime(2026, 3, 2, 9, tzinfo=timezone.utc)
    params = recorder.calls[0][2]["params"]
    assert params["timeMin"] == "2026-03-01T00:00:00Z"
    assert params["singleEvents"] == "true"


def test_zoom_upcoming_derives_end_from_duration(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder(
        _FakeResponse(
            payload={
                "meetings": [
                    {
                        "id": 8123,
                        "topic": "Standup",
                        "start_time": "2026-03-02T08:30:00Z",
                        "duration": 15,
                        "join_url": "https://zoom.us/j/8123",
                    },
                    {"id": 9000, "topic": "Recurring without time", "duration": 30},
                ]
            }
        )
    )
    monkeypatch.setattr("recorder_api.oauth.requests.request", recorder)

    meetings = _zoom().list_upcoming("token", datetime(2026, 3, 1, tzinfo=timezone.utc))

    assert [meeting.provider_meeting_id for meeting in meetings] == ["8123"]
    assert meetings[0].end - meetings[0].start == timedelta(minutes=15)
    assert recorder.calls[0][2]["params"] == {"type": "upcoming"}


def test_zoom_start_recording_patches_live_meeting(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder(_FakeResponse(status_code=204))
    monkeypatch.setattr("recorder_api.oauth.requests.request", recorder)

    assert _zoom().start_recording("token", "8123") is True

    method, url, kwargs = recorder.calls[0]
    assert method == "PATCH"
    assert url == "https://api.zoom.us/v2/live_meetings/8123/events"
    assert kwargs["json"] == {"method": "recording.start"}
    assert kwargs["headers"] == {"Authorization": "Bearer token"}
