from datetime import date, datetime, timedelta, timezone

import pytest

from campus_planner.models import UserPreferences, WorkingHours
from scheduling.scheduler import (
    FALLBACK_REASONING,
    FallbackScheduler,
    local_day_bounds,
    unscheduled_tasks,
    working_window,
)

DAY = date(2026, 3, 5)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 5, hour, minute, tzinfo=timezone.utc)


def test_empty_input_gives_empty_schedule(now):
    assert FallbackScheduler().schedule([], [], UserPreferences(), DAY, now) == []


def test_tasks_placed_by_score_with_breaks(make_task, now):
    low = make_task(title="Laundry", category="personal", priority="low")
    high = make_task(title="Exam prep", category="exam", priority="urgent")

    out = FallbackScheduler().schedule([low, high], [], UserPreferences(), DAY, now)

    assert [a.title for a in out] == ["Exam prep", "Laundry"]
    assert out[0].start_time == _at(9)
    assert out[0].end_time == _at(10)
    # default 15 minute break
    assert out[1].start_time == _at(10, 15)
    assert all(a.reasoning == FALLBACK_REASONING for a in out)


def test_busy_entries_are_skipped(make_task, make_entry, now):
    lecture = make_entry(_at(9, 30), _at(11))
    task = make_task(estimated_duration=45)

    out = FallbackScheduler().schedule([task], [lecture], UserPreferences(), DAY, now)

    assert out[0].start_time == _at(11)
    assert out[0].end_time == _at(11, 45)


def test_inactive_entries_do_not_block(make_task, make_entry, now):
    cancelled_class = make_entry(_at(9), _at(12), is_active=False)
    out = FallbackScheduler().schedule(
        [make_task()], [cancelled_class], UserPreferences(), DAY, now
    )
    assert out[0].start_time == _at(9)


def test_task_that_does_not_fit_is_left_out(make_task, now):
    prefs = UserPreferences(working_hours=WorkingHours(start="09:00", end="11:00"))
    big = make_task(title="Thesis", category="project", priority="urgent", estimated_duration=180)
    small = make_task(title="Quiz", estimated_duration=30)

    out = FallbackScheduler().schedule([big, small], [], prefs, DAY, now)

    assert [a.title for a in out] == ["Quiz"]
    assert out[0].start_time == _at(9)


def test_closed_tasks_are_ignored(make_task, now):
    done = make_task(status="completed")
    dropped = make_task(status="cancelled")
    assert FallbackScheduler().schedule([done, dropped], [], UserPreferences(), DAY, now) == []


def test_inputs_are_not_mutated(make_task, now):
    tasks = [make_task(title="B"), make_task(title="A", priority="urgent")]
    before = [t.model_dump() for t in tasks]
    FallbackScheduler().schedule(tasks, [], UserPreferences(), DAY, now)
    assert [t.model_dump() for t in tasks] == before


def test_working_window_uses_user_timezone():
    prefs = UserPreferences(timezone="America/New_York")
    start, end = working_window(DAY, prefs)
    # EST is UTC-5 in early March
    assert start == _at(14)
    assert end == _at(23)


def test_unknown_timezone_falls_back_to_utc():
    start, _ = working_window(DAY, UserPreferences(timezone="Mars/Olympus"))
    assert start == _at(9)


def test_equal_scores_keep_input_order(make_task, now):
    first = make_task(title="First")
    second = make_task(title="Second")
    out = FallbackScheduler().schedule([first, second], [], UserPreferences(), DAY, now)
    assert [a.title for a in out] == ["First", "Second"]
    assert out[1].start_time - out[0].end_time == timedelta(minutes=15)


@pytest.mark.parametrize("break_minutes", [0, 10, 25])
def test_every_task_placed_with_its_duration_and_breaks(make_task, now, break_minutes):
    durations = [30, 45, 60, 20, 50, 15]
    priorities = ["low", "urgent", "medium", "high", "medium", "low"]
    tasks = [
        make_task(title=f"T{i}", estimated_duration=d, priority=p)
        for i, (d, p) in enumerate(zip(durations, priorities))
    ]
    prefs = UserPreferences(break_duration=break_minutes)

    out = FallbackScheduler().schedule(tasks, [], prefs, DAY, now)

    assert len(out) == len(tasks)
    by_id = {t.id: t for t in tasks}
    for a in out:
        assert a.end_time - a.start_time == timedelta(minutes=by_id[a.task_id].estimated_duration)
    for first, second in zip(out, out[1:]):
        assert first.end_time + timedelta(minutes=break_minutes) <= second.start_time
    window_start, window_end = working_window(DAY, prefs)
    assert out[0].start_time >= window_start
    assert out[-1].end_time <= window_end


def test_not_before_moves_the_start_later_only(make_task, make_entry, now):
    lecture = make_entry(_at(9, 30), _at(10, 30))
    task = make_task()

    later = FallbackScheduler().schedule(
        [task], [lecture], UserPreferences(), DAY, now, not_before=_at(10)
    )
    assert later[0].start_time == _at(10, 30)

    earlier = FallbackScheduler().schedule(
        [task], [], UserPreferences(), DAY, now, not_before=_at(6)
    )
    assert earlier[0].start_time == _at(9)


def test_local_day_bounds_follow_user_timezone():
    prefs = UserPreferences(timezone="Pacific/Auckland")
    start, end = local_day_bounds(DAY, prefs)
    # NZDT is UTC+13 in early March
    assert start == datetime(2026, 3, 4, 11, 0, tzinfo=timezone.utc)
    assert end - start == timedelta(days=1)


def test_unscheduled_tasks_lists_open_tasks_left_out(make_task, now):
    placed = make_task(title="Placed")
    left = make_task(title="Left")
    done = make_task(title="Done", status="completed")
    out = FallbackScheduler().schedule([placed], [], UserPreferences(), DAY, now)

    assert unscheduled_tasks([placed, left, done], out) == [left]
