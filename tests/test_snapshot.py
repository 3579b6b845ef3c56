"""Tests for partitioning, derived views and the grounding payload."""

import json

from helpers import ME, NOW, at, hours, make_event
from prestige_assistant.entities import Transaction, UserProfile
from prestige_assistant.snapshot import (
    SNAPSHOT_HEADER,
    build_snapshot,
    events_organized_by,
    split_events,
)


def _names(events):
    return [e.name for e in events]


class TestSplitEvents:
    def test_boundary_rules_count_as_upcoming(self):
        events = [
            make_event("Future", start=NOW + hours(1)),
            make_event("In progress", start=NOW - hours(1), end=NOW + hours(1)),
            make_event("Open start", end=NOW + hours(2)),
        ]
        upcoming, past = split_events(events, NOW)
        assert _names(upcoming) == ["In progress", "Future", "Open start"]
        assert past == []

    def test_start_equal_to_now_is_upcoming(self):
        upcoming, _ = split_events([make_event("Now", start=NOW)], NOW)
        assert _names(upcoming) == ["Now"]

    def test_finished_and_undated_events_are_past(self):
        events = [
            make_event("Done", start=NOW - hours(3), end=NOW - hours(1)),
            make_event("Started", start=NOW - hours(1)),
            make_event("Undated"),
        ]
        upcoming, past = split_events(events, NOW)
        assert upcoming == []
        assert _names(past) == ["Done", "Started", "Undated"]

    def test_upcoming_sorted_by_start_then_end(self):
        events = [
            make_event("Later", start=NOW + hours(5)),
            make_event("End only", end=NOW + hours(2)),
            make_event("Sooner", start=NOW + hours(1)),
        ]
        upcoming, _ = split_events(events, NOW)
        assert _names(upcoming) == ["Sooner", "End only", "Later"]

    def test_past_sorted_newest_first(self):
        events = [
            make_event("Old", start=NOW - hours(48), end=NOW - hours(47)),
            make_event("Recent", start=NOW - hours(3), end=NOW - hours(2)),
            make_event("Start only", start=NOW - hours(10)),
        ]
        _, past = split_events(events, NOW)
        assert _names(past) == ["Recent", "Start only", "Old"]

    def test_sort_is_stable_for_equal_keys(self):
        events = [make_event(f"E{i}", start=NOW + hours(1)) for i in range(5)]
        upcoming, _ = split_events(events, NOW)
        assert _names(upcoming) == ["E0", "E1", "E2", "E3", "E4"]


class TestOrganizedBy:
    def test_owner_and_organizer_references(self):
        events = [
            make_event("Owned", owner_id="42"),
            make_event("Nested", organizers=[{"userId": 42}]),
            make_event("Bare", organizers=["42"]),
            make_event("Other", owner_id="7", organizers=[{"id": 7}]),
        ]
        assert _names(events_organized_by(events, ME)) == ["Owned", "Nested", "Bare"]

    def test_profile_without_id_organizes_nothing(self):
        events = [make_event("Owned", owner_id="42")]
        assert events_organized_by(events, UserProfile()) == []
        assert events_organized_by(events, None) == []


class TestBuildSnapshot:
    def test_counts_and_views(self):
        events = [
            make_event("Gala", start=at(22, 18), end=at(22, 20), registered=True, owner_id="42"),
            make_event("Picnic", start=at(10, 12), registered=True),
            make_event("Talk", start=at(25, 9)),
        ]
        txns = [Transaction(id="1", points=50, type="award")]
        snap = build_snapshot(ME, events, txns, NOW)

        assert snap.counts == {
            "totalEvents": 3,
            "upcoming": 2,
            "past": 1,
            "rsvps": 2,
            "organizing": 1,
            "transactions": 1,
        }
        assert _names(snap.rsvps) == ["Gala", "Picnic"]
        assert _names(snap.organizing) == ["Gala"]
        assert snap.payload["user"] == {
            "id": "42", "name": "Alice", "utorid": "alice1", "role": "regular", "points": 120,
        }

    def test_compact_event_projection(self):
        event = make_event(
            "Gala", start=at(22, 18), end=at(22, 20), location="Hall A",
            capacity=50, guests_count=10, published=True, registered=True,
            description="not part of the projection",
        )
        snap = build_snapshot(ME, [event], [], NOW)
        assert snap.payload["upcoming"] == [{
            "id": "gala",
            "name": "Gala",
            "location": "Hall A",
            "startTime": "2026-10-22T18:00:00+00:00",
            "endTime": "2026-10-22T20:00:00+00:00",
            "capacity": 50,
            "guestsCount": 10,
            "published": True,
            "meRsvped": True,
        }]

    def test_lists_capped_but_counts_exact(self):
        events = [make_event(f"E{i}", start=NOW + hours(i + 1), registered=True) for i in range(500)]
        txns = [Transaction(id=str(i), points=1) for i in range(300)]

        snap = build_snapshot(ME, events, txns, NOW)
        assert len(snap.payload["upcoming"]) == 200
        assert len(snap.payload["rsvps"]) == 200
        assert len(snap.payload["transactions"]) == 200
        assert snap.counts["upcoming"] == 500
        assert snap.counts["transactions"] == 300
        # the derived views themselves stay complete
        assert len(snap.upcoming) == 500

    def test_custom_context_limit(self):
        events = [make_event(f"E{i}", start=NOW + hours(i + 1)) for i in range(30)]
        snap = build_snapshot(ME, events, [], NOW, context_limit=10)
        assert [e["name"] for e in snap.payload["upcoming"]] == [f"E{i}" for i in range(10)]
        assert snap.counts["upcoming"] == 30

    def test_render_is_deterministic(self):
        events = [
            make_event("B", start=NOW + hours(1)),
            make_event("A", start=NOW + hours(1)),
            make_event("Old", end=NOW - hours(1)),
        ]
        first = build_snapshot(ME, events, [], NOW).render()
        second = build_snapshot(ME, list(events), [], NOW).render()
        assert first == second
        assert first.startswith(SNAPSHOT_HEADER)
        payload = json.loads(first[len(SNAPSHOT_HEADER):])
        assert [e["name"] for e in payload["upcoming"]] == ["B", "A"]

    def test_warnings_only_when_present(self):
        assert "warnings" not in build_snapshot(ME, [], [], NOW).payload
        snap = build_snapshot(ME, [], [], NOW, warnings=["Events could not be loaded."])
        assert snap.payload["warnings"] == ["Events could not be loaded."]
