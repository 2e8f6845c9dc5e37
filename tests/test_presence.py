"""Tests for active-collaborator presence."""

from datetime import datetime, timedelta

import pytest

from contracts import ActiveCollaborator, DossierStatus, ForbiddenError, NotFoundError
from lifecycle import PresenceTracker
from store import Collections


class MovingClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def moving_clock():
    return MovingClock(datetime(2025, 1, 15, 9, 0))


@pytest.fixture
def tracker(store, moving_clock):
    return PresenceTracker(store, stale_after=timedelta(hours=2), clock=moving_clock)


@pytest.fixture
def team_dossier(dossier):
    dossier.team_members = ["u-admin", "u-avocat"]
    return dossier


class TestOpen:
    """Test joining a dossier."""

    def test_join_notifies_team(self, tracker, team_dossier, users, effective_for, store):
        outcome = tracker.open(team_dossier, effective_for(users["admin"]))
        assert [c.staff_id for c in outcome.dossier.active_collaborators] == ["u-admin"]
        assert [e.recipient for e in outcome.effects] == ["u-avocat"]
        saved = store.get(Collections.DOSSIERS, "d-1")
        assert saved["active_collaborators"][0]["staff_id"] == "u-admin"

    def test_rejoin_refreshes_activity(self, tracker, team_dossier, users, effective_for, moving_clock):
        effective = effective_for(users["admin"])
        tracker.open(team_dossier, effective)
        moving_clock.advance(minutes=30)
        outcome = tracker.open(team_dossier, effective)
        (entry,) = outcome.dossier.active_collaborators
        assert entry.last_activity == moving_clock.now
        assert entry.joined_at == datetime(2025, 1, 15, 9, 0)
        assert outcome.effects == []

    def test_stale_entries_pruned_on_write(self, tracker, team_dossier, users, effective_for, moving_clock):
        team_dossier.active_collaborators = [
            ActiveCollaborator(staff_id="u-avocat", joined_at=moving_clock.now, last_activity=moving_clock.now),
        ]
        moving_clock.advance(hours=3)
        outcome = tracker.open(team_dossier, effective_for(users["admin"]))
        assert [c.staff_id for c in outcome.dossier.active_collaborators] == ["u-admin"]

    def test_non_admin_refused(self, tracker, team_dossier, users, effective_for):
        with pytest.raises(ForbiddenError):
            tracker.open(team_dossier, effective_for(users["avocat"]))

    def test_admin_outside_team_refused(self, tracker, dossier, users, effective_for):
        with pytest.raises(ForbiddenError, match="team member"):
            tracker.open(dossier, effective_for(users["admin"]))

    def test_closed_dossier_refused(self, tracker, team_dossier, users, effective_for):
        team_dossier.set_status(DossierStatus.ANNULE)
        with pytest.raises(ForbiddenError) as exc:
            tracker.open(team_dossier, effective_for(users["admin"]))
        assert exc.value.details["dossier_closed"] is True

    def test_top_tier_bypasses_team_and_closure(self, tracker, dossier, users, effective_for):
        dossier.set_status(DossierStatus.REJET)
        outcome = tracker.open(dossier, effective_for(users["superadmin"]))
        assert [c.staff_id for c in outcome.dossier.active_collaborators] == ["u-super"]


class TestListAndClose:
    """Test listing and leaving."""

    def test_listing_hides_stale_entries(self, tracker, team_dossier, users, effective_for, moving_clock):
        tracker.open(team_dossier, effective_for(users["admin"]))
        assert len(tracker.list_collaborators(team_dossier)["collaborators"]) == 1
        moving_clock.advance(hours=2, minutes=1)
        listing = tracker.list_collaborators(team_dossier)
        assert listing["collaborators"] == []
        assert listing["is_closed"] is False
        assert listing["message"] is None

    def test_close(self, tracker, team_dossier, users, effective_for):
        tracker.open(team_dossier, effective_for(users["admin"]))
        outcome = tracker.close(team_dossier, effective_for(users["admin"]))
        assert outcome.dossier.active_collaborators == []

    def test_open_on_removed_dossier(self, tracker, team_dossier, users, effective_for, store):
        store.delete(Collections.DOSSIERS, "d-1")
        with pytest.raises(NotFoundError):
            tracker.open(team_dossier, effective_for(users["admin"]))
