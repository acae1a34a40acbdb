"""
Calendar Publisher - pushes a study schedule to Google Calendar.

One event per scheduled block. The calendar API is not assumed to be
idempotent, so nothing is deduplicated here: the workflow's publish status
is what prevents a second run. Failures are never swallowed. A rejected
token before anything was created means the user must re-authenticate;
any failure after the first event reports exactly how far publishing got.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional, Sequence

import httpx

from learnpath.config import Settings, get_settings
from learnpath.engines.planning.scheduler import ScheduledBlock
from learnpath.errors import AuthRequired, PartialPublish
from learnpath.logging_config import get_logger

logger = get_logger(__name__)

AUTH_STATUS_CODES = (401, 403)


@dataclass
class PublishResult:
    created_count: int
    event_ids: List[str] = field(default_factory=list)


def _format_hours(hours: float) -> str:
    return f"{hours:g} hour" + ("" if hours == 1 else "s")


class CalendarPublisher:
    """Creates calendar events for scheduled blocks using a user's OAuth token."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def events_url(self) -> str:
        base = self.settings.calendar_api_base.rstrip("/")
        return f"{base}/calendars/{self.settings.calendar_id}/events"

    def build_event(
        self,
        block: ScheduledBlock,
        summary_prefix: str = "",
        description: str = "",
        workflow_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, Any]:
        """Calendar event body for one block, in the configured time zone."""
        day_start = datetime.combine(block.date, time(hour=self.settings.calendar_day_start_hour))
        start = day_start + timedelta(hours=block.start_offset_hours)
        end = start + timedelta(hours=block.hours)
        tz = self.settings.calendar_timezone

        summary = block.node_title or block.node_id
        if summary_prefix:
            summary = f"{summary_prefix}: {summary}"
        lines = [description.strip()] if description and description.strip() else []
        lines.append(f"Planned study time: {_format_hours(block.hours)}")

        private = {"nodeId": block.node_id}
        if workflow_id is not None:
            private["workflowId"] = str(workflow_id)

        return {
            "summary": summary,
            "description": "\n\n".join(lines),
            "start": {"dateTime": start.isoformat(), "timeZone": tz},
            "end": {"dateTime": end.isoformat(), "timeZone": tz},
            "reminders": {"useDefault": True},
            "extendedProperties": {"private": private},
        }

    async def publish(
        self,
        blocks: Sequence[ScheduledBlock],
        access_token: Optional[str],
        summary_prefix: str = "",
        descriptions: Optional[Dict[str, str]] = None,
        workflow_id: Optional[uuid.UUID] = None,
    ) -> PublishResult:
        """
        Create one event per block, in order.

        Raises:
            AuthRequired: token missing, or rejected before any event was created
            PartialPublish: a request failed; carries how many events exist
        """
        token = (access_token or "").strip()
        if not token:
            raise AuthRequired("Calendar access token is missing")

        descriptions = descriptions or {}
        result = PublishResult(created_count=0)
        headers = {"Authorization": f"Bearer {token}"}
        logger.info(
            "Publishing schedule to calendar",
            extra={"block_count": len(blocks), "calendar_id": self.settings.calendar_id},
        )

        async with httpx.AsyncClient(
            timeout=self.settings.calendar_timeout_seconds,
            transport=self._transport,
        ) as client:
            for index, block in enumerate(blocks):
                body = self.build_event(
                    block,
                    summary_prefix=summary_prefix,
                    description=descriptions.get(block.node_id, ""),
                    workflow_id=workflow_id,
                )
                failed_at = {
                    "index": index,
                    "node_id": block.node_id,
                    "date": block.date.isoformat(),
                }
                try:
                    response = await client.post(self.events_url, json=body, headers=headers)
                except httpx.HTTPError as exc:
                    raise self._failure(result, failed_at, f"calendar request failed: {exc}") from exc

                if response.status_code in AUTH_STATUS_CODES:
                    if result.created_count == 0:
                        logger.warning(
                            "Calendar rejected access token",
                            extra={"status_code": response.status_code},
                        )
                        raise AuthRequired("Calendar access token was rejected or has expired")
                    raise self._failure(result, failed_at, f"token rejected (HTTP {response.status_code})")
                if response.status_code >= 400:
                    raise self._failure(result, failed_at, f"calendar API returned HTTP {response.status_code}")

                try:
                    payload = response.json()
                except ValueError:
                    payload = {}
                event_id = str(payload.get("id", "")) if isinstance(payload, dict) else ""
                result.created_count += 1
                result.event_ids.append(event_id)

        logger.info("Schedule published", extra={"created_count": result.created_count})
        return result

    @staticmethod
    def _failure(result: PublishResult, failed_at: Dict[str, Any], detail: str) -> PartialPublish:
        logger.error(
            "Calendar publish stopped",
            extra={"created_count": result.created_count, "failed_at": failed_at, "detail": detail},
        )
        return PartialPublish(result.created_count, failed_at, detail)
