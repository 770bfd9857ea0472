from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from campus_planner.models import (
    DependencyCycleError,
    DependencyError,
    InvalidTransitionError,
    TaskCreate,
    check_transition,
)
from scheduling.dependencies import validate_dependencies


@pytest.mark.parametrize(
    "current, requested",
    [
        ("pending", "in_progress"),
        ("pending", "completed"),
        ("pending", "cancelled"),
        ("in_progress", "completed"),
        ("in_progress", "cancelled"),
        ("completed", "completed"),
    ],
)
def test_allowed_transitions(current, requested):
    check_transition(current, requested)


@pytest.mark.parametrize(
    "current, requested",
    [
        ("completed", "pending"),
        ("completed", "in_progress"),
        ("cancelled", "pending"),
        ("in_progress", "pending"),
    ],
)
def test_forbidden_transitions(current, requested):
    with pytest.raises(InvalidTransitionError):
        check_transition(current, requested)


def test_naive_deadline_is_taken_as_utc():
    task = TaskCreate(
        title="Lab report",
        category="lab",
        estimated_duration=30,
        deadline=datetime(2026, 3, 5, 12, 0),
    )
    assert task.deadline.tzinfo is not None
    assert task.deadline.utcoffset() == timedelta(0)


def test_blank_title_is_rejected():
    with pytest.raises(ValidationError):
        TaskCreate(title="   ", category="lab", estimated_duration=30, deadline=datetime.now(timezone.utc))


def test_overdue_only_for_open_tasks(make_task, now):
    late = make_task(deadline=now - timedelta(hours=1))
    assert late.is_overdue(now)
    assert not make_task(deadline=now - timedelta(hours=1), status="completed").is_overdue(now)
    assert not make_task(deadline=now - timedelta(hours=1), status="cancelled").is_overdue(now)
    assert late.time_remaining_s(now) == 0


def test_entry_conflicts_are_half_open(make_entry, now):
    a = make_entry(now, now + timedelta(hours=1))
    b = make_entry(now + timedelta(hours=1), now + timedelta(hours=2))
    assert not a.conflicts_with(b)


def test_user_email_is_normalized(make_user):
    assert make_user(email="  Ada@Uni.EDU ").email == "ada@uni.edu"


def test_dependencies_are_deduplicated():
    graph = {"a": [], "b": []}
    assert validate_dependencies("c", ["a", "b", "a"], graph) == ["a", "b"]


def test_self_dependency_is_rejected():
    with pytest.raises(DependencyError):
        validate_dependencies("a", ["a"], {"a": []})


def test_unknown_dependency_is_rejected():
    with pytest.raises(DependencyError):
        validate_dependencies("a", ["ghost"], {"a": []})


def test_dependency_cycle_is_rejected():
    # b depends on a; making a depend on b closes the loop
    graph = {"a": [], "b": ["a"]}
    with pytest.raises(DependencyCycleError) as exc:
        validate_dependencies("a", ["b"], graph)
    assert "a -> b -> a" in str(exc.value)
