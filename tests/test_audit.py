from unittest.mock import MagicMock

import pytest

from landguard.audit import AuditTrailRecorder
from landguard.errors import StoreUnavailable, ValidationError
from landguard.models import InMemoryAuditSink
from landguard.permissions import ResourceType


@pytest.fixture
def sink():
    return InMemoryAuditSink()


@pytest.fixture
def recorder(sink, clock):
    return AuditTrailRecorder(sink, clock=clock)


def test_record_appends_entry(recorder, sink, clock):
    entry = recorder.record("U-1", "land_edit", ResourceType.LAND, 42, before={"a": 1}, after={"a": 2})
    assert sink.entries() == [entry]
    assert entry.resource_type == "land"
    assert entry.resource_id == "42"
    assert entry.timestamp == clock()


def test_correction_is_a_new_entry(recorder, sink, clock):
    original = recorder.record("U-1", "land_edit", "land", "P1", after={"price": 100})
    clock.advance(minutes=1)
    fix = recorder.record_correction(original.entry_id, "U-2", before={"price": 100}, after={"price": 90})

    assert fix.entry_id != original.entry_id
    assert fix.corrects_entry_id == original.entry_id
    assert fix.resource_id == "P1"
    assert sink.get(original.entry_id) == original
    assert [e.entry_id for e in recorder.history("land", "P1")] == [original.entry_id, fix.entry_id]


def test_correction_of_missing_entry_is_rejected(recorder):
    with pytest.raises(ValidationError):
        recorder.record_correction("missing", "U-1")


def test_sink_refuses_duplicate_entry_ids(recorder, sink):
    entry = recorder.record("U-1", "land_edit", "land", "P1")
    with pytest.raises(ValueError):
        sink.append(entry)


def test_history_is_time_ordered(recorder, clock):
    later = recorder.record("U-1", "land_edit", "land", "P1")
    clock.advance(minutes=-5)
    earlier = recorder.record("U-1", "land_view", "land", "P1")
    assert recorder.history(ResourceType.LAND, "P1") == [earlier, later]


def test_sink_failure_propagates(clock):
    sink = MagicMock()
    sink.append.side_effect = StoreUnavailable("down")
    with pytest.raises(StoreUnavailable):
        AuditTrailRecorder(sink, clock=clock).record("U-1", "land_edit", "land", "P1")


def test_entry_serializes(recorder):
    data = recorder.record("U-1", "land_edit", "land", "P1", after={"tags": {"b", "a"}}).to_dict()
    assert data["after"] == {"tags": ["a", "b"]}
    assert data["timestamp"].endswith("Z")
    assert data["correctsEntryId"] is None


@pytest.mark.parametrize("resource_id", [None, "", "   "])
def test_entry_needs_a_resource_id(recorder, sink, resource_id):
    with pytest.raises(ValidationError):
        recorder.record("U-1", "land_edit", "land", resource_id)
    assert sink.entries() == []


def test_chain_root_follows_corrections(recorder):
    original = recorder.record("U-1", "land_edit", "land", "P1")
    fix = recorder.record_correction(original.entry_id, "U-2")
    fix_of_fix = recorder.record_correction(fix.entry_id, "U-3")
    assert recorder.chain_root(fix_of_fix.entry_id) == original
    assert recorder.chain_root("missing") is None
