"""OAuth clients for the calendar/meeting providers.

Each provider wraps the authorization-code grant, the refresh-token grant, the
profile lookup used to label a connection, and the upcoming-meeting listing
that feeds ``scheduled_meetings``. All calls are blocking ``requests`` calls;
the async layer runs them in worker threads.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import requests


class OAuthError(RuntimeError):
    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class ProviderUnauthorizedError(OAuthError):
    """The provider rejected the access token (HTTP 401)."""


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    refresh_token: str | None
    expires_at: datetime | None


@dataclass(frozen=True)
class ProviderProfile:
    provider_user_id: str
    email: str


@dataclass(frozen=True)
class UpcomingMeeting:
    provider: str
    provider_meeting_id: str
    title: str
    start: datetime
    end: datetime
    meeting_link: str


def _parse_time(value: str) -> datetime:
    if len(value) == 10:
        # all-day events carry a bare date
        return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def make_state(secret: str, user_id: str, provider: str) -> str:
    nonce = secrets.token_urlsafe(12)
    return f"{nonce}.{_sign(secret, nonce, user_id, provider)}"


def verify_state(secret: str, state: str, user_id: str, provider: str) -> bool:
    nonce, _, signature = state.partition(".")
    if not nonce or not signature:
        return False
    return hmac.compare_digest(signature, _sign(secret, nonce, user_id, provider))


def _sign(secret: str, nonce: str, user_id: str, provider: str) -> str:
    message = f"{nonce}:{user_id}:{provider}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()[:32]


class OAuthProvider(ABC):
    name: str
    scheduled_provider: str
    authorize_endpoint: str
    token_endpoint: str

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout_seconds: float = 20.0,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._timeout = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    def authorization_url(self, state: str) -> str:
        return f"{self.authorize_endpoint}?{urlencode(self._authorization_params(state))}"

    def exchange_code(self, code: str) -> TokenSet:
        body = self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            }
        )
        return self._parse_tokens(body)

    def refresh(self, refresh_token: str) -> TokenSet:
        body = self._token_request({"grant_type": "refresh_token", "refresh_token": refresh_token})
        return self._parse_tokens(body, previous_refresh_token=refresh_token)

    @abstractmethod
    def fetch_profile(self, access_token: str) -> ProviderProfile:
        ...

    @abstractmethod
    def list_upcoming(self, access_token: str, now: datetime) -> list[UpcomingMeeting]:
        ...

    def _authorization_params(self, state: str) -> dict[str, str]:
        return {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "state": state,
        }

    @abstractmethod
    def _token_request(self, grant: dict[str, str]) -> dict[str, Any]:
        ...

    def _parse_tokens(self, body: dict[str, Any], previous_refresh_token: str | None = None) -> TokenSet:
        access_token = body.get("access_token")
        if not access_token:
            raise OAuthError(self.name, f"{self.name} token response missing access_token")
        expires_in = body.get("expires_in")
        expires_at = None
        if expires_in is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
        return TokenSet(
            access_token=str(access_token),
            refresh_token=body.get("refresh_token") or previous_refresh_token,
            expires_at=expires_at,
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = requests.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            raise OAuthError(self.name, f"{self.name} transport failure: {exc}") from exc

        if response.status_code == 401:
            raise ProviderUnauthorizedError(self.name, f"{self.name} rejected the access token", 401)
        if response.status_code >= 400:
            raise OAuthError(
                self.name,
                f"{self.name} request failed with status {response.status_code}: {response.text[:400]}",
                response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise OAuthError(self.name, f"{self.name} returned non-JSON response: {response.text[:400]}") from exc

    @staticmethod
    def _bearer(access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}


class GoogleProvider(OAuthProvider):
    name = "google"
    scheduled_provider = "google_meet"
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    userinfo_endpoint = "https://www.googleapis.com/oauth2/v2/userinfo"
    events_endpoint = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
    scopes = (
        "https://www.googleapis.com/auth/calendar.readonly",
        "https://www.googleapis.com/auth/calendar.events.readonly",
        "openid",
        "email",
        "profile",
    )

    def _authorization_params(self, state: str) -> dict[str, str]:
        params = super()._authorization_params(state)
        params.update(scope=" ".join(self.scopes), access_type="offline", prompt="consent")
        return params

    def _token_request(self, grant: dict[str, str]) -> dict[str, Any]:
        payload = {"client_id": self._client_id, "client_secret": self._client_secret, **grant}
        return self._request("POST", self.token_endpoint, json=payload)

    def fetch_profile(self, access_token: str) -> ProviderProfile:
        body = self._request("GET", self.userinfo_endpoint, headers=self._bearer(access_token))
        return ProviderProfile(provider_user_id=str(body.get("id", "")), email=str(body.get("email", "")))

    def list_upcoming(self, access_token: str, now: datetime) -> list[UpcomingMeeting]:
        params = {
            "orderBy": "startTime",
            "singleEvents": "true",
            "timeMin": now.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "maxResults": "20",
            "conferenceDataVersion": "1",
        }
        body = self._request("GET", self.events_endpoint, headers=self._bearer(access_token), params=params)

        meetings: list[UpcomingMeeting] = []
        for event in body.get("items") or []:
            entry_points = (event.get("conferenceData") or {}).get("entryPoints") or []
            if not entry_points:
                continue
            start = event.get("start") or {}
            end = event.get("end") or {}
            meetings.append(
                UpcomingMeeting(
                    provider=self.scheduled_provider,
                    provider_meeting_id=str(event["id"]),
                    title=event.get("summary") or "Untitled meeting",
                    start=_parse_time(start.get("dateTime") or start["date"]),
                    end=_parse_time(end.get("dateTime") or end["date"]),
                    meeting_link=entry_points[0].get("uri", ""),
                )
            )
        return meetings


class ZoomProvider(OAuthProvider):
    name = "zoom"
    scheduled_provider = "zoom"
    authorize_endpoint = "https://zoom.us/oauth/authorize"
    token_endpoint = "https://zoom.us/oauth/token"
    api_base = "https://api.zoom.us/v2"

    def _token_request(self, grant: dict[str, str]) -> dict[str, Any]:
        return self._request(
            "POST",
            self.token_endpoint,
            auth=(self._client_id, self._client_secret),
            data=grant,
        )

    def fetch_profile(self, access_token: str) -> ProviderProfile:
        body = self._request("GET", f"{self.api_base}/users/me", headers=self._bearer(access_token))
        return ProviderProfile(provider_user_id=str(body.get("id", "")), email=str(body.get("email", "")))

    def list_upcoming(self, access_token: str, now: datetime) -> list[UpcomingMeeting]:
        body = self._request(
            "GET",
            f"{self.api_base}/users/me/meetings",
            headers=self._bearer(access_token),
            params={"type": "upcoming"},
        )
        meetings: list[UpcomingMeeting] = []
        for meeting in body.get("meetings") or []:
            if not meeting.get("start_time"):
                # recurring meetings without a fixed time cannot be auto-recorded
                continue
            start = _parse_time(meeting["start_time"])
            meetings.append(
                UpcomingMeeting(
                    provider=self.scheduled_provider,
                    provider_meeting_id=str(meeting.get("uuid") or meeting["id"]),
                    title=meeting.get("topic") or "Untitled meeting",
                    start=start,
                    end=start + timedelta(minutes=int(meeting.get("duration") or 0)),
                    meeting_link=meeting.get("join_url", ""),
                )
            )
        return meetings

    def start_recording(self, access_token: str, meeting_id: str) -> bool:
        self._request(
            "PATCH",
            f"{self.api_base}/live_meetings/{meeting_id}/events",
            headers=self._bearer(access_token),
            json={"method": "recording.start"},
        )
        return True

    def list_recordings(self, access_token: str, meeting_id: str) -> list[dict[str, Any]]:
        body = self._request(
            "GET",
            f"{self.api_base}/meetings/{meeting_id}/recordings",
            headers=self._bearer(access_token),
        )
        return list(body.get("recording_files") or [])
