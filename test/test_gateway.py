import json
from datetime import date, datetime, timedelta, timezone

import pytest

from assistant.gateway import ReasoningGateway, ReasoningUnavailableError
from campus_planner.models import UserPreferences
from llm.llm_client import LLMClient
from scheduling.scheduler import FallbackScheduler

DAY = date(2026, 3, 5)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 5, hour, minute, tzinfo=timezone.utc)


def _gateway(provider) -> ReasoningGateway:
    return ReasoningGateway(LLMClient(provider=provider), FallbackScheduler())


def _proposal(task_id, start, end):
    return {
        "task_id": task_id,
        "scheduled_start_time": start.isoformat(),
        "scheduled_end_time": end.isoformat(),
        "reasoning": "morning focus",
    }


def test_model_schedule_is_accepted(fake_provider_factory, make_task, now):
    task = make_task()
    start = _at(10)
    provider = fake_provider_factory(json.dumps([_proposal(task.id, start, start + timedelta(hours=1))]))

    result = _gateway(provider).optimize_schedule([task], [], UserPreferences(), DAY, now)

    assert result.source == "model"
    assert result.assignments[0].task_id == task.id
    assert result.assignments[0].reasoning == "morning focus"


def test_unknown_task_id_falls_back(fake_provider_factory, make_task, now):
    task = make_task()
    start = _at(10)
    provider = fake_provider_factory(json.dumps([_proposal("ghost", start, start + timedelta(hours=1))]))

    result = _gateway(provider).optimize_schedule([task], [], UserPreferences(), DAY, now)

    assert result.source == "fallback"
    assert [a.task_id for a in result.assignments] == [task.id]


def test_empty_interval_falls_back(fake_provider_factory, make_task, now):
    task = make_task()
    start = _at(10)
    provider = fake_provider_factory(json.dumps([_proposal(task.id, start, start)]))
    result = _gateway(provider).optimize_schedule([task], [], UserPreferences(), DAY, now)
    assert result.source == "fallback"


def test_overlap_with_existing_entry_falls_back(fake_provider_factory, make_task, make_entry, now):
    task = make_task()
    start = _at(10)
    lecture = make_entry(start, start + timedelta(hours=2))
    provider = fake_provider_factory(json.dumps([_proposal(task.id, start, start + timedelta(hours=1))]))

    result = _gateway(provider).optimize_schedule([task], [lecture], UserPreferences(), DAY, now)

    assert result.source == "fallback"


def test_same_task_twice_falls_back(fake_provider_factory, make_task, now):
    task = make_task()
    provider = fake_provider_factory(
        json.dumps([_proposal(task.id, _at(9), _at(10)), _proposal(task.id, _at(11), _at(11, 5))])
    )

    result = _gateway(provider).optimize_schedule([task], [], UserPreferences(), DAY, now)

    assert result.source == "fallback"
    assert len(result.assignments) == 1


@pytest.mark.parametrize(
    "start, end",
    [
        ((2, 0), (3, 0)),  # before working hours
        ((17, 30), (18, 30)),  # runs past the end of the day
        ((23, 0), (23, 5)),
    ],
)
def test_proposal_outside_working_hours_falls_back(fake_provider_factory, make_task, now, start, end):
    task = make_task()
    provider = fake_provider_factory(json.dumps([_proposal(task.id, _at(*start), _at(*end))]))

    result = _gateway(provider).optimize_schedule([task], [], UserPreferences(), DAY, now)

    assert result.source == "fallback"
    assert result.assignments[0].start_time == _at(9)


def test_not_before_bounds_model_and_fallback(fake_provider_factory, make_task, now):
    task = make_task()
    early = fake_provider_factory(json.dumps([_proposal(task.id, _at(9), _at(10))]))

    result = _gateway(early).optimize_schedule(
        [task], [], UserPreferences(), DAY, now, not_before=_at(12)
    )
    assert result.source == "fallback"
    assert result.assignments[0].start_time == _at(12)

    assert "2026-03-05T12:00:00+00:00" in early.calls[0]["user"]


def test_offline_model_reports_unscheduled(offline_provider, make_task, now):
    fits = make_task(title="Short", estimated_duration=60)
    too_long = make_task(title="Marathon", estimated_duration=600)

    result = _gateway(offline_provider).optimize_schedule(
        [fits, too_long], [], UserPreferences(), DAY, now
    )

    assert result.source == "fallback"
    assert [a.task_id for a in result.assignments] == [fits.id]
    assert result.unscheduled == [too_long.id]


def test_no_tasks_skips_the_model(fake_provider_factory, now):
    provider = fake_provider_factory("[]")
    result = _gateway(provider).optimize_schedule([], [], UserPreferences(), DAY, now)
    assert result.assignments == []
    assert provider.calls == []


def test_recommendations_empty_on_failure(offline_provider, make_task):
    assert _gateway(offline_provider).recommendations([make_task()], []) == []


def test_recommendations_parsed(fake_provider_factory, make_task):
    provider = fake_provider_factory(
        json.dumps([{"type": "breakdown", "title": "Split the essay", "priority": "high"}])
    )
    recs = _gateway(provider).recommendations([make_task()], [])
    assert recs[0].type == "breakdown"
    assert recs[0].suggested_tasks == []


def test_chat_failure_is_surfaced(offline_provider, make_user):
    with pytest.raises(ReasoningUnavailableError):
        _gateway(offline_provider).chat("How do I study?", profile=make_user().profile())


def test_chat_includes_student_context(fake_provider_factory, make_user):
    provider = fake_provider_factory("  Use spaced repetition.  ")
    reply = _gateway(provider).chat("How do I study?", "midterms", make_user().profile())
    assert reply == "Use spaced repetition."
    assert "State U" in provider.calls[0]["user"]
    assert "midterms" in provider.calls[0]["user"]


def test_breakdown_and_strategy_failures_propagate(fake_provider_factory, make_task):
    gateway = _gateway(fake_provider_factory("not json"))
    with pytest.raises(ReasoningUnavailableError):
        gateway.breakdown_task(make_task())
    with pytest.raises(ReasoningUnavailableError):
        gateway.study_strategy("Calculus", "2026-04-01")


def test_breakdown_parsed(fake_provider_factory, make_task):
    provider = fake_provider_factory(
        json.dumps([{"title": "Outline", "estimated_duration": 20}, {"title": "Draft", "dependencies": ["Outline"]}])
    )
    subtasks = _gateway(provider).breakdown_task(make_task())
    assert [s.title for s in subtasks] == ["Outline", "Draft"]
    assert subtasks[1].estimated_duration == 30


def test_announcement_analysis_degrades_to_empty(offline_provider):
    analysis = _gateway(offline_provider).analyze_announcements(["Quiz moved to Friday"])
    assert analysis.deadlines == []
    assert analysis.reminders == []
