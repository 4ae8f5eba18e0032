"""
Normalization service - maps each source's native records onto WorkItem.

Accepts both the flattened records the source bridges emit and the native
REST shapes (JIRA ``fields``, Microsoft Graph messages/events, Confluence
content with ``version``). Output depends only on the input batch, so
normalizing the same batch twice yields identical items.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from app.features.priority.domain.models import EPOCH, NormalizedBatch, Source, WorkItem
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

RESOLVED_JIRA_STATUSES = {"done", "closed", "resolved"}
CONFLUENCE_URGENCY_LABELS = ("urgent", "critical", "asap", "priority", "escalation")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO strings, Graph ``{dateTime, timeZone}`` objects and datetimes to aware UTC."""
    if value is None or value == "":
        return None

    if isinstance(value, Mapping):
        value = value.get("dateTime") or value.get("date")
        if not value:
            return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            # JIRA emits offsets without a colon, e.g. 2024-01-05T10:00:00.000+0000
            try:
                parsed = datetime.strptime(text, "%Y-%m-%dT%H:%M:%S.%f%z")
            except ValueError:
                return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _lower(value: Any) -> str | None:
    text = _text(value)
    return text.lower() if text else None


def _person(value: Any) -> str | None:
    """Pick an identity out of a person-ish field (str or user object)."""
    if isinstance(value, Mapping):
        for key in ("name", "username", "key", "emailAddress", "accountId", "address"):
            candidate = value.get(key)
            if isinstance(candidate, Mapping):
                candidate = candidate.get("address")
            if _text(candidate):
                return _text(candidate)
        return None
    return _text(value)


class Normalizer:
    """Converts raw adapter records into WorkItems."""

    def normalize(self, source: Source | str, raw_items: Iterable[Mapping[str, Any]]) -> NormalizedBatch:
        source = Source(source)
        mapper = {
            Source.JIRA: self._jira_item,
            Source.OUTLOOK: self._outlook_item,
            Source.CONFLUENCE: self._confluence_item,
        }[source]

        items: list[WorkItem] = []
        dropped = 0
        for raw in raw_items or ():
            item = mapper(raw) if isinstance(raw, Mapping) else None
            if item is None:
                dropped += 1
                continue
            items.append(item)

        if dropped:
            logger.info(
                "Dropped source records during normalization",
                source=source.value,
                dropped=dropped,
                kept=len(items),
            )
        return NormalizedBatch(source=source, items=tuple(items), dropped=dropped)

    # ------------------------------------------------------------------
    # JIRA
    # ------------------------------------------------------------------

    def _jira_item(self, raw: Mapping[str, Any]) -> WorkItem | None:
        fields = raw.get("fields") if isinstance(raw.get("fields"), Mapping) else {}

        item_id = _text(raw.get("key")) or _text(raw.get("id"))
        title = _text(raw.get("summary")) or _text(raw.get("title")) or _text(fields.get("summary"))
        if not item_id or not title:
            return None

        status = raw.get("status", fields.get("status"))
        if isinstance(status, Mapping):
            status = status.get("name")
        if _lower(status) in RESOLVED_JIRA_STATUSES:
            return None

        priority = raw.get("priority", fields.get("priority"))
        if isinstance(priority, Mapping):
            priority = priority.get("name")

        return WorkItem(
            id=item_id,
            source=Source.JIRA,
            title=title,
            due_at=parse_timestamp(
                raw.get("dueDate") or raw.get("duedate") or fields.get("duedate")
            ),
            updated_at=parse_timestamp(raw.get("updated") or fields.get("updated")) or EPOCH,
            raw_priority=_lower(priority),
            owner_id=_person(raw.get("assignee", fields.get("assignee"))) or "",
            url=_text(raw.get("webUrl")) or _text(raw.get("self")),
        )

    # ------------------------------------------------------------------
    # Outlook (Microsoft Graph messages and events)
    # ------------------------------------------------------------------

    def _outlook_item(self, raw: Mapping[str, Any]) -> WorkItem | None:
        item_id = _text(raw.get("id"))
        title = _text(raw.get("subject")) or _text(raw.get("title"))
        if not item_id or not title:
            return None

        flag = raw.get("flag") if isinstance(raw.get("flag"), Mapping) else {}
        is_event = "start" in raw

        if is_event:
            due_at = parse_timestamp(raw.get("start"))
        else:
            due_at = parse_timestamp(flag.get("dueDateTime"))

        if _lower(flag.get("flagStatus")) == "flagged":
            raw_priority = "flagged"
        else:
            raw_priority = _lower(raw.get("importance"))

        updated_at = (
            parse_timestamp(raw.get("lastModifiedDateTime"))
            or parse_timestamp(raw.get("receivedDateTime"))
            or EPOCH
        )

        return WorkItem(
            id=item_id,
            source=Source.OUTLOOK,
            title=title,
            due_at=due_at,
            updated_at=updated_at,
            raw_priority=raw_priority,
            owner_id=self._outlook_owner(raw) or "",
            url=_text(raw.get("webLink")),
        )

    @staticmethod
    def _outlook_owner(raw: Mapping[str, Any]) -> str | None:
        owner = _text(raw.get("ownerId")) or _text(raw.get("mailbox"))
        if owner:
            return owner
        recipients = raw.get("toRecipients") or []
        for recipient in recipients:
            address = _person(recipient.get("emailAddress")) if isinstance(recipient, Mapping) else None
            if address:
                return address
        organizer = raw.get("organizer")
        if isinstance(organizer, Mapping):
            return _person(organizer.get("emailAddress"))
        return None

    # ------------------------------------------------------------------
    # Confluence
    # ------------------------------------------------------------------

    def _confluence_item(self, raw: Mapping[str, Any]) -> WorkItem | None:
        item_id = _text(raw.get("id"))
        title = _text(raw.get("title"))
        if not item_id or not title:
            return None

        version = raw.get("version") if isinstance(raw.get("version"), Mapping) else {}
        owner = (
            _text(raw.get("ownerId"))
            or _person(version.get("by"))
            or _person(raw.get("modifiedBy"))
        )

        return WorkItem(
            id=item_id,
            source=Source.CONFLUENCE,
            title=title,
            due_at=parse_timestamp(raw.get("dueDate")),
            updated_at=(
                parse_timestamp(version.get("when"))
                or parse_timestamp(raw.get("lastModified"))
                or EPOCH
            ),
            raw_priority=self._confluence_urgency(raw.get("labels")),
            owner_id=owner or "",
            url=_text(raw.get("url")),
        )

    @staticmethod
    def _confluence_urgency(labels: Any) -> str | None:
        if isinstance(labels, Mapping):
            labels = labels.get("results", [])
        for label in labels or ():
            name = _lower(label.get("name") if isinstance(label, Mapping) else label)
            if not name:
                continue
            for urgent in CONFLUENCE_URGENCY_LABELS:
                if urgent in name:
                    return urgent
        return None


normalizer = Normalizer()
