"""Failure notifier: emails each configured recipient when a dispatch fails."""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel

from cadence.infrastructure.logger import logger
from cadence.scheduling.types import DispatchFailure, Schedule


class EmailMessage(BaseModel):
    to: str
    subject: str
    body: str


class NotificationTransport(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class FailureNotifier:
    def __init__(self, transport: NotificationTransport) -> None:
        self._transport = transport

    def should_notify(self, schedule: Schedule) -> bool:
        return schedule.notification_on_failure and bool(schedule.notification_emails)

    async def notify(self, schedule: Schedule, failure: DispatchFailure) -> int:
        """Send one alert per recipient. Returns how many sends succeeded; send errors are logged, not raised."""
        if not self.should_notify(schedule):
            return 0

        sent = 0
        for address in schedule.notification_emails:
            try:
                await self._transport.send(build_failure_message(address, schedule, failure))
                sent += 1
            except Exception:
                logger.exception("Failure notification not sent", schedule_id=schedule.id, recipient=address)
        logger.info(
            "Failure notifications sent",
            schedule_id=schedule.id,
            sent=sent,
            recipients=len(schedule.notification_emails),
        )
        return sent


def build_failure_message(address: str, schedule: Schedule, failure: DispatchFailure) -> EmailMessage:
    body = "\n".join([
        f'Scheduled workflow "{schedule.name}" failed.',
        "",
        f"Schedule: {schedule.id}",
        f"Workflow: {schedule.workflow_id}",
        f"Frequency: {schedule.frequency}",
        f"Error ({failure.kind}): {failure.error}",
        "",
        "The schedule remains active and will be retried on a later scheduler run.",
    ])
    return EmailMessage(to=address, subject=f"Scheduled workflow failed: {schedule.name}", body=body)
