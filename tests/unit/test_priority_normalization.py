"""
Tests for source record normalization.
"""

from datetime import UTC, datetime

from app.features.priority.domain.models import EPOCH, Source
from app.features.priority.pipeline.normalization.service import Normalizer, parse_timestamp
from tests.conftest import NOW, confluence_records, jira_records, outlook_records

normalizer = Normalizer()


def test_jira_native_record_maps_to_work_item():
    batch = normalizer.normalize(Source.JIRA, jira_records())

    assert batch.dropped == 0
    [item] = batch.items
    assert item.id == "PROJ-101"
    assert item.source is Source.JIRA
    assert item.title == "Fix login outage"
    assert item.raw_priority == "high"
    assert item.owner_id == "alice"
    assert item.due_at == datetime(2025, 3, 9, 9, 0, tzinfo=UTC)


def test_jira_nested_fields_shape():
    raw = {
        "key": "OPS-7",
        "fields": {
            "summary": "Rotate certificates",
            "priority": {"name": "Blocker"},
            "duedate": "2025-03-12",
            "updated": "2025-03-09T10:00:00.000+0000",
            "assignee": {"accountId": "acc-1"},
        },
    }

    [item] = normalizer.normalize("jira", [raw]).items

    assert item.title == "Rotate certificates"
    assert item.raw_priority == "blocker"
    assert item.owner_id == "acc-1"
    assert item.due_at == datetime(2025, 3, 12, tzinfo=UTC)
    assert item.updated_at == datetime(2025, 3, 9, 10, 0, tzinfo=UTC)


def test_resolved_jira_issues_are_skipped():
    raw = dict(jira_records()[0], status="Done")

    batch = normalizer.normalize(Source.JIRA, [raw])

    assert batch.items == ()
    assert batch.dropped == 1


def test_outlook_flagged_message_uses_flagged_priority():
    [item] = normalizer.normalize(Source.OUTLOOK, outlook_records()).items

    assert item.raw_priority == "flagged"
    assert item.due_at is None
    assert item.owner_id == "alice"
    assert item.updated_at == datetime(2025, 3, 10, 8, 0, tzinfo=UTC)


def test_outlook_event_due_at_is_start_time():
    raw = {
        "id": "evt-1",
        "subject": "Quarterly review",
        "start": {"dateTime": "2025-03-11T14:00:00.000000", "timeZone": "UTC"},
        "organizer": {"emailAddress": {"address": "alice@example.com"}},
        "importance": "normal",
    }

    [item] = normalizer.normalize(Source.OUTLOOK, [raw]).items

    assert item.due_at == datetime(2025, 3, 11, 14, 0, tzinfo=UTC)
    assert item.owner_id == "alice@example.com"
    assert item.raw_priority == "normal"
    assert item.updated_at == EPOCH


def test_confluence_urgency_label_becomes_priority():
    raw = dict(confluence_records()[0], labels={"results": [{"name": "release-urgent"}]})

    [item] = normalizer.normalize(Source.CONFLUENCE, [raw]).items

    assert item.raw_priority == "urgent"
    assert item.owner_id == "alice"


def test_records_missing_id_or_title_are_dropped():
    batch = normalizer.normalize(
        Source.CONFLUENCE,
        [{"id": "1"}, {"title": "No id"}, "not-a-record", confluence_records()[0]],
    )

    assert len(batch.items) == 1
    assert batch.dropped == 3


def test_normalize_is_idempotent():
    records = jira_records() + [{"key": "PROJ-102", "summary": "Docs", "assignee": "bob"}]

    assert normalizer.normalize(Source.JIRA, records) == normalizer.normalize(Source.JIRA, records)


def test_parse_timestamp_variants():
    assert parse_timestamp("2025-03-10T09:00:00Z") == NOW
    assert parse_timestamp("2025-03-10T10:00:00+01:00") == NOW
    assert parse_timestamp(datetime(2025, 3, 10, 9, 0)) == NOW
    assert parse_timestamp({"dateTime": "2025-03-10T09:00:00"}) == NOW
    assert parse_timestamp("next tuesday") is None
    assert parse_timestamp("") is None
    assert parse_timestamp(12345) is None
