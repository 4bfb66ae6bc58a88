from datetime import timedelta

import pytest

from hackathon_core.errors import (
    DeadlinePassed,
    DuplicateSubmission,
    Forbidden,
    LateWindowClosed,
    NotEditable,
    NotRegistered,
    ValidationError,
)
from hackathon_core.services import registrations as registrations_module

PROJECT = {
    "title": "Green Router",
    "description": "Routes traffic around congestion",
    "repo_url": "https://github.com/example/green-router",
    "tech_stack": ["python", " fastapi ", ""],
}


def solo_draft(services, hackathon, user, payload=None):
    services.registrations.register(hackathon.id, user.id, "individual", consent=True)
    return services.submissions.create_draft(hackathon.id, user.id, payload or {})


def test_individual_submission_lifecycle(services, hackathon, alice, clock):
    services.registrations.register(hackathon.id, alice.id, "individual", consent=True)

    draft = services.submissions.create_draft(hackathon.id, alice.id, {"title": "WIP"})
    assert draft.status == "draft"
    assert draft.user_id == alice.id
    assert draft.team_id is None

    clock.advance(days=1)
    updated = services.submissions.update_draft(draft.id, alice.id, PROJECT)
    assert updated.title == "Green Router"
    assert updated.tech_stack == ["python", "fastapi"]
    assert updated.status == "draft"

    clock.advance(hours=12)
    final = services.submissions.finalize(draft.id, alice.id, "submit")
    assert final.status == "submitted"
    assert final.submitted_at == clock()
    assert "submission" in services.notifier.kinds_for(alice.id)


def test_create_draft_requires_registration(services, hackathon, alice):
    with pytest.raises(NotRegistered):
        services.submissions.create_draft(hackathon.id, alice.id, PROJECT)


def test_create_draft_requires_approved_registration(services, hackathon, alice, monkeypatch):
    monkeypatch.setattr(registrations_module, "REGISTRATION_APPROVAL", "manual")
    services.registrations.register(hackathon.id, alice.id, "individual", consent=True)

    with pytest.raises(NotRegistered):
        services.submissions.create_draft(hackathon.id, alice.id, PROJECT)


def test_create_draft_twice(services, hackathon, alice):
    solo_draft(services, hackathon, alice, PROJECT)
    with pytest.raises(DuplicateSubmission):
        services.submissions.create_draft(hackathon.id, alice.id, PROJECT)


def test_create_draft_after_end(services, hackathon, alice, clock):
    services.registrations.register(hackathon.id, alice.id, "individual", consent=True)
    clock.set(hackathon.end_at + timedelta(seconds=1))

    with pytest.raises(DeadlinePassed):
        services.submissions.create_draft(hackathon.id, alice.id, PROJECT)


def test_team_submission_is_owned_by_team(services, hackathon, alice, bob, carol):
    result = services.registrations.register(hackathon.id, alice.id, "team", team_name="Rocket", consent=True)
    team = result.team
    services.teams.join_by_code(team.join_code, bob.id)

    draft = services.submissions.create_draft(hackathon.id, bob.id, PROJECT)
    assert draft.team_id == team.id
    assert draft.user_id is None
    assert draft.created_by == bob.id

    # One submission per team
    with pytest.raises(DuplicateSubmission):
        services.submissions.create_draft(hackathon.id, alice.id, PROJECT)

    # Only the leader edits
    with pytest.raises(Forbidden):
        services.submissions.update_draft(draft.id, bob.id, {"title": "Mine now"})
    with pytest.raises(Forbidden):
        services.submissions.finalize(draft.id, carol.id, "submit")

    final = services.submissions.finalize(draft.id, alice.id, "submit")
    assert final.status == "submitted"

    assert [s.id for s in services.submissions.list_for_user(bob.id)] == [draft.id]
    assert services.submissions.owner_user_ids(final) == [alice.id, bob.id]


def test_update_draft_rules(services, hackathon, alice, bob, clock):
    draft = solo_draft(services, hackathon, alice, PROJECT)

    with pytest.raises(Forbidden):
        services.submissions.update_draft(draft.id, bob.id, {"title": "Stolen"})

    # Unknown fields are ignored
    updated = services.submissions.update_draft(draft.id, alice.id, {"status": "submitted", "demo_url": "https://demo"})
    assert updated.status == "draft"
    assert updated.demo_url == "https://demo"

    services.submissions.finalize(draft.id, alice.id, "submit")
    with pytest.raises(NotEditable):
        services.submissions.update_draft(draft.id, alice.id, {"title": "Too late"})


def test_update_draft_after_end(services, hackathon, alice, clock):
    draft = solo_draft(services, hackathon, alice, PROJECT)
    clock.set(hackathon.end_at + timedelta(minutes=1))

    with pytest.raises(DeadlinePassed):
        services.submissions.update_draft(draft.id, alice.id, {"title": "After hours"})


def test_submit_requires_title_and_link(services, hackathon, alice):
    draft = solo_draft(services, hackathon, alice, {"title": "No link yet"})

    with pytest.raises(ValidationError):
        services.submissions.finalize(draft.id, alice.id, "submit")


def test_save_draft_keeps_status(services, hackathon, alice):
    draft = solo_draft(services, hackathon, alice, PROJECT)

    saved = services.submissions.finalize(draft.id, alice.id, "save_draft")
    assert saved.status == "draft"
    assert saved.submitted_at is None

    with pytest.raises(ValidationError):
        services.submissions.finalize(draft.id, alice.id, "publish")


def test_submit_twice(services, hackathon, alice):
    draft = solo_draft(services, hackathon, alice, PROJECT)
    services.submissions.finalize(draft.id, alice.id, "submit")

    with pytest.raises(NotEditable):
        services.submissions.finalize(draft.id, alice.id, "submit")


def test_submit_inside_grace_window_is_late(services, hackathon, alice, clock):
    draft = solo_draft(services, hackathon, alice, PROJECT)
    clock.set(hackathon.end_at + timedelta(hours=23, minutes=59))

    final = services.submissions.finalize(draft.id, alice.id, "submit")
    assert final.status == "late"


def test_submit_after_grace_window(services, hackathon, alice, clock):
    draft = solo_draft(services, hackathon, alice, PROJECT)
    clock.set(hackathon.end_at + timedelta(hours=24, minutes=1))

    with pytest.raises(LateWindowClosed):
        services.submissions.finalize(draft.id, alice.id, "submit")


def test_submit_exactly_at_end_is_on_time(services, hackathon, alice, clock):
    draft = solo_draft(services, hackathon, alice, PROJECT)
    clock.set(hackathon.end_at)

    assert services.submissions.finalize(draft.id, alice.id, "submit").status == "submitted"


def test_organizer_lock_and_reopen(services, hackathon, organizer, alice, bob):
    draft = solo_draft(services, hackathon, alice, PROJECT)

    with pytest.raises(Forbidden):
        services.submissions.set_lock(draft.id, bob, True, "nope")

    locked = services.submissions.set_lock(draft.id, organizer, True, "Plagiarism review")
    assert locked.locked is True
    assert locked.locked_reason == "Plagiarism review"

    with pytest.raises(NotEditable):
        services.submissions.update_draft(draft.id, alice.id, {"title": "Edit"})
    with pytest.raises(NotEditable):
        services.submissions.finalize(draft.id, alice.id, "submit")

    unlocked = services.submissions.set_lock(draft.id, organizer, False)
    assert unlocked.locked is False
    assert unlocked.locked_reason is None

    services.submissions.finalize(draft.id, alice.id, "submit")
    reopened = services.submissions.reopen(draft.id, organizer)
    assert reopened.status == "draft"
    assert reopened.submitted_at is None


def test_get_submission_visibility(services, hackathon, organizer, alice, bob, judge):
    draft = solo_draft(services, hackathon, alice, PROJECT)

    assert services.submissions.get_submission(draft.id, viewer=alice).id == draft.id
    assert services.submissions.get_submission(draft.id, viewer=organizer).id == draft.id
    with pytest.raises(Forbidden):
        services.submissions.get_submission(draft.id, viewer=bob)

    services.scoring.assign_judge(hackathon.id, organizer, judge.email)
    assert services.submissions.get_submission(draft.id, viewer=judge).id == draft.id


def test_timestamps_are_stored_as_naive_utc(services, session, hackathon, alice, clock):
    draft = solo_draft(services, hackathon, alice, {"title": "Clock", "repo_url": "https://github.com/example/clock"})
    clock.advance(hours=2)
    services.submissions.finalize(draft.id, alice.id, "submit")

    session.expire_all()
    stored = services.submissions.get_submission(draft.id)
    assert stored.submitted_at == clock()
    assert stored.submitted_at.tzinfo is None
    assert stored.created_at.tzinfo is None
