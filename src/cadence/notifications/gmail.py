"""Gmail API sender and a log-only fallback transport."""

from __future__ import annotations

import asyncio
import base64
import json
from pathlib import Path

from cadence.errors import NotificationTransportError
from cadence.infrastructure.logger import logger
from cadence.scheduling.notifier import EmailMessage


def encode_message(message: EmailMessage, sender: str) -> str:
    """RFC 2822 text, base64url without padding, as the Gmail API expects in `raw`."""
    parts = [
        f"From: {sender}",
        f"To: {message.to}",
        f"Subject: {message.subject}",
        "Content-Type: text/plain; charset=utf-8",
        "",
        message.body,
    ]
    return base64.urlsafe_b64encode("\r\n".join(parts).encode()).decode().rstrip("=")


class GmailTransport:
    """Sends mail through the Gmail API with stored OAuth credentials.

    config_dir holds gcp-oauth.keys.json (client id/secret) and credentials.json
    (access and refresh tokens). Refreshed tokens are written back.
    """

    def __init__(self, config_dir: str, sender: str) -> None:
        from google.oauth2.credentials import Credentials
        from googleapiclient.discovery import build

        keys_path = Path(config_dir) / "gcp-oauth.keys.json"
        creds_path = Path(config_dir) / "credentials.json"

        keys = json.loads(keys_path.read_text())
        creds_data = json.loads(creds_path.read_text())

        installed = keys.get("installed", keys.get("web", {}))

        self._creds = Credentials(
            token=creds_data.get("access_token"),
            refresh_token=creds_data.get("refresh_token"),
            token_uri="https://oauth2.googleapis.com/token",
            client_id=installed.get("client_id", ""),
            client_secret=installed.get("client_secret", ""),
        )
        self._creds_path = creds_path
        self._sender = sender
        self._gmail = build("gmail", "v1", credentials=self._creds)

    def _save_creds(self) -> None:
        if self._creds.token:
            existing = json.loads(self._creds_path.read_text())
            existing["access_token"] = self._creds.token
            if self._creds.refresh_token:
                existing["refresh_token"] = self._creds.refresh_token
            self._creds_path.write_text(json.dumps(existing, indent=2))

    async def send(self, message: EmailMessage) -> None:
        raw = encode_message(message, self._sender)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self._gmail.users().messages().send(userId="me", body={"raw": raw}).execute(),
            )
        except Exception as err:
            raise NotificationTransportError(message.to, str(err)) from err
        self._save_creds()
        logger.debug("Notification sent", recipient=message.to)


class LogTransport:
    """Writes notifications to the log instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        self.sent.append(message)
        logger.info("Notification (log only)", recipient=message.to, subject=message.subject)
