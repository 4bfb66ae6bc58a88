import pytest
from sqlmodel import select

from hackathon_core.errors import Forbidden, InvalidTransition, NotAssigned, NotFound, ValidationError
from hackathon_core.models import JudgeAssignment, Score
from hackathon_core.services.scoring import rubric_total, validate_rubric

RUBRIC = {"innovation": 8, "technical": 7, "design": 6, "impact": 9, "presentation": 5}


def submitted_project(services, hackathon, user, title="Green Router"):
    services.registrations.register(hackathon.id, user.id, "individual", consent=True)
    draft = services.submissions.create_draft(
        hackathon.id, user.id, {"title": title, "repo_url": "https://github.com/example/repo"}
    )
    return services.submissions.finalize(draft.id, user.id, "submit")


def test_rubric_total_is_mean():
    assert rubric_total(RUBRIC) == 7.0
    assert rubric_total({**RUBRIC, "presentation": 6}) == 7.2


@pytest.mark.parametrize("bad", [
    {**RUBRIC, "design": 0},
    {**RUBRIC, "design": 11},
    {**RUBRIC, "design": "7"},
    {**RUBRIC, "design": True},
    {k: v for k, v in RUBRIC.items() if k != "impact"},
])
def test_validate_rubric_rejects(bad):
    with pytest.raises(ValidationError):
        validate_rubric(bad)


def test_assign_judge_is_idempotent(services, session, hackathon, organizer, judge):
    first = services.scoring.assign_judge(hackathon.id, organizer, "JUDGE@example.com")
    second = services.scoring.assign_judge(hackathon.id, organizer, judge.email)

    assert first.id == second.id
    assert services.scoring.is_assigned(hackathon.id, judge.id)
    assert len(session.exec(select(JudgeAssignment)).all()) == 1
    assert services.notifier.kinds_for(judge.id) == ["judge_assignment"]


def test_assign_judge_rules(services, make_user, hackathon, organizer, alice, judge):
    other_organizer = make_user("other-org@example.com", role="organizer")
    admin = make_user("admin@example.com", role="admin")

    with pytest.raises(Forbidden):
        services.scoring.assign_judge(hackathon.id, other_organizer, judge.email)
    with pytest.raises(Forbidden):
        services.scoring.assign_judge(hackathon.id, alice, judge.email)
    with pytest.raises(NotFound):
        services.scoring.assign_judge(hackathon.id, organizer, alice.email)
    with pytest.raises(NotFound):
        services.scoring.assign_judge(hackathon.id, organizer, "nobody@example.com")

    assert services.scoring.assign_judge(hackathon.id, admin, judge.email).judge_id == judge.id


def test_submit_score_requires_assignment(services, hackathon, alice, judge):
    submission = submitted_project(services, hackathon, alice)

    with pytest.raises(NotAssigned):
        services.scoring.submit_score(submission.id, judge.id, RUBRIC)
    with pytest.raises(NotFound):
        services.scoring.submit_score(9999, judge.id, RUBRIC)


def test_drafts_cannot_be_scored(services, hackathon, organizer, alice, judge):
    services.registrations.register(hackathon.id, alice.id, "individual", consent=True)
    draft = services.submissions.create_draft(hackathon.id, alice.id, {"title": "WIP"})
    services.scoring.assign_judge(hackathon.id, organizer, judge.email)

    with pytest.raises(InvalidTransition):
        services.scoring.submit_score(draft.id, judge.id, RUBRIC)


def test_submit_score_upserts(services, session, hackathon, organizer, alice, judge):
    submission = submitted_project(services, hackathon, alice)
    services.scoring.assign_judge(hackathon.id, organizer, judge.email)

    first = services.scoring.submit_score(submission.id, judge.id, RUBRIC, "Solid")
    second = services.scoring.submit_score(
        submission.id, judge.id,
        {"innovation": 10, "technical": 10, "design": 9, "impact": 9, "presentation": 7},
        "Even better after the demo"
    )

    assert first.id == second.id
    rows = session.exec(select(Score).where(Score.submission_id == submission.id)).all()
    assert len(rows) == 1
    assert rows[0].total == 9.0
    assert rows[0].feedback == "Even better after the demo"


def test_aggregate_score(services, make_user, hackathon, organizer, alice, judge):
    other_judge = make_user("judge2@example.com", role="judge")
    submission = submitted_project(services, hackathon, alice)
    services.scoring.assign_judge(hackathon.id, organizer, judge.email)
    services.scoring.assign_judge(hackathon.id, organizer, other_judge.email)

    assert services.scoring.aggregate_score(submission.id) is None

    services.scoring.submit_score(submission.id, judge.id, RUBRIC)  # 7.0
    services.scoring.submit_score(
        submission.id, other_judge.id,
        {"innovation": 9, "technical": 9, "design": 9, "impact": 9, "presentation": 9}
    )

    assert services.scoring.aggregate_score(submission.id) == 8.0
    assert services.scoring.aggregate_scores(hackathon.id) == {submission.id: (8.0, 2)}
    assert len(services.scoring.list_scores(submission.id)) == 2


def test_scores_frozen_after_winners(services, hackathon, organizer, alice, judge):
    submission = submitted_project(services, hackathon, alice)
    services.scoring.assign_judge(hackathon.id, organizer, judge.email)
    services.scoring.submit_score(submission.id, judge.id, RUBRIC)

    services.winners.announce(hackathon.id, organizer, [{"submission_id": submission.id, "rank": 1}])

    with pytest.raises(InvalidTransition):
        services.scoring.submit_score(submission.id, judge.id, RUBRIC)


def test_judge_queue(services, hackathon, organizer, alice, bob, judge):
    first = submitted_project(services, hackathon, alice, "First")
    second = submitted_project(services, hackathon, bob, "Second")

    with pytest.raises(NotAssigned):
        services.scoring.judge_queue(hackathon.id, judge.id)

    services.scoring.assign_judge(hackathon.id, organizer, judge.email)
    services.scoring.submit_score(second.id, judge.id, RUBRIC)

    queue = {row["submission_id"]: row for row in services.scoring.judge_queue(hackathon.id, judge.id)}
    assert queue[first.id]["scored"] is False
    assert queue[first.id]["my_total"] is None
    assert queue[second.id]["scored"] is True
    assert queue[second.id]["my_total"] == 7.0
