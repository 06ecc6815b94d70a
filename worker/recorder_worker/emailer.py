from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Any

import requests

from recorder_worker.config import WorkerSettings
from recorder_worker.types import SummaryResult


@dataclass(frozen=True)
class EmailSendResult:
    message_id: str
    provider_status: str
    message_href: str | None
    recipient_state: str | None


@dataclass(frozen=True)
class MeetingNotes:
    meeting_id: str
    title: str
    summary: SummaryResult
    transcript_url: str | None = None


def _html_list(heading: str, items: list[str]) -> str:
    if not items:
        return ""
    rows = "".join(f"<li>{html.escape(item)}</li>" for item in items)
    return f"<h3>{html.escape(heading)}</h3><ul>{rows}</ul>"


class MailjetEmailSender:
    provider = "mailjet"

    def __init__(self, settings: WorkerSettings) -> None:
        self._settings = settings

    @staticmethod
    def _mask_secret(value: str) -> str:
        if len(value) <= 8:
            return "*" * len(value)
        return f"{value[:4]}...{value[-4:]}"

    def subject_for(self, title: str) -> str:
        return f"{self._settings.email_subject_prefix}: {title}"

    def render_text(self, name: str, notes: MeetingNotes) -> str:
        lines = [
            f"Meeting: {notes.title}",
            "",
            f"Dear {name},",
            "",
            "Thank you for attending the meeting. Here's a summary of what was discussed:",
            "",
            notes.summary.summary,
        ]
        if notes.summary.key_points:
            lines.extend(["", "Key points:"])
            lines.extend(f"- {point}" for point in notes.summary.key_points)
        if notes.summary.action_items:
            lines.extend(["", "Action items:"])
            lines.extend(f"- {item}" for item in notes.summary.action_items)
        if notes.transcript_url:
            lines.extend(["", f"View full transcript: {notes.transcript_url}"])
        lines.extend(["", "Best regards,", self._settings.mailjet_from_name])
        return "\n".join(lines)

    def render_html(self, name: str, notes: MeetingNotes) -> str:
        transcript_link = ""
        if notes.transcript_url:
            transcript_link = (
                f'<p><a href="{html.escape(notes.transcript_url, quote=True)}">View full transcript</a></p>'
            )
        return (
            '<html><body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">'
            f"<h2>Meeting: {html.escape(notes.title)}</h2>"
            f"<p>Dear {html.escape(name)},</p>"
            "<p>Thank you for attending the meeting. Here's a summary of what was discussed:</p>"
            f"<h3>Summary</h3><p>{html.escape(notes.summary.summary)}</p>"
            f"{_html_list('Key points', notes.summary.key_points)}"
            f"{_html_list('Action items', notes.summary.action_items)}"
            f"{transcript_link}"
            f"<p>Best regards,<br/>{html.escape(self._settings.mailjet_from_name)}</p>"
            "</body></html>"
        )

    def send_meeting_notes(self, recipient: str, name: str, notes: MeetingNotes) -> EmailSendResult:
        message: dict[str, Any] = {
            "From": {
                "Email": self._settings.mailjet_from_email,
                "Name": self._settings.mailjet_from_name,
            },
            "To": [{"Email": recipient, "Name": name}],
            "Subject": self.subject_for(notes.title),
            "TextPart": self.render_text(name, notes),
            "HTMLPart": self.render_html(name, notes),
            "CustomID": notes.meeting_id,
        }
        if self._settings.email_reply_to:
            message["ReplyTo"] = {"Email": self._settings.email_reply_to}

        payload = {"Messages": [message]}
        url = f"{self._settings.mailjet_base_url.rstrip('/')}/v3.1/send"

        try:
            response = requests.post(
                url,
                auth=(self._settings.mailjet_api_key, self._settings.mailjet_api_secret),
                json=payload,
                timeout=self._settings.mailjet_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise RuntimeError(f"Mailjet transport failure: {exc}") from exc
        if response.status_code >= 400:
            if response.status_code == 401:
                key_hint = self._mask_secret(self._settings.mailjet_api_key)
                secret_hint = self._mask_secret(self._settings.mailjet_api_secret)
                raise RuntimeError(
                    "Mailjet authentication failed (401). "
                    "Check MAILJET_API_KEY/MAILJET_API_SECRET are Send API keys from the same account. "
                    f"key={key_hint}, secret={secret_hint}"
                )
            raise RuntimeError(
                f"Mailjet send failed with status {response.status_code}: {response.text[:400]}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise RuntimeError(f"Mailjet returned non-JSON response: {response.text[:400]}") from exc

        sent = (body.get("Messages") or [{}])[0]
        provider_status = str(sent.get("Status") or "unknown").lower()
        if provider_status != "success":
            raise RuntimeError(f"Mailjet returned non-success status: {provider_status}; body={sent}")

        errors = sent.get("Errors") or []
        if errors:
            raise RuntimeError(f"Mailjet send returned errors: {errors}")

        recipient_status = (sent.get("To") or [{}])[0]
        message_id = recipient_status.get("MessageID") or recipient_status.get("MessageUUID")
        if message_id is None:
            raise RuntimeError("Mailjet response missing message identifier")
        return EmailSendResult(
            message_id=str(message_id),
            provider_status=provider_status,
            message_href=recipient_status.get("MessageHref"),
            recipient_state=recipient_status.get("MessageState"),
        )
