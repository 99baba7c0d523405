from __future__ import annotations

import json
from datetime import date
from types import SimpleNamespace

import openai
import pytest

from aide.api.schemas.schedule import TaskPayload
from aide.core.config import Settings
from aide.scheduling.constraints import ConstraintModel
from aide.scheduling.repair import BusySlot, repair_schedule
from aide.services import schedule_generator
from aide.services.schedule_generator import (
    GeneratorFailed,
    GeneratorNotConfigured,
    GeneratorParseError,
    build_schedule_prompt,
    extract_json_object,
    fallback_schedule,
    pending_tasks,
    planning_dates,
    request_schedule,
)

SATURDAY = date(2024, 1, 6)


def _tasks():
    return [
        TaskPayload(id="t1", title="Quarterly report", priority="medium", estimated_minutes=30, due_date="2024-01-12"),
        TaskPayload(id="t2", title="Fix login bug", priority="high", estimated_minutes=90),
        TaskPayload(id="t3", title="Archive inbox", priority="low", status="completed"),
    ]


class _FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class _FakeOpenAI:
    def __init__(self, completions, **kwargs):
        self.kwargs = kwargs
        self.chat = SimpleNamespace(completions=completions)


def _patch_openai(monkeypatch, completions):
    created = []

    def factory(**kwargs):
        client = _FakeOpenAI(completions, **kwargs)
        created.append(client)
        return client

    monkeypatch.setattr(schedule_generator.openai, "OpenAI", factory)
    return created


def test_pending_tasks_skip_completed():
    assert [task.id for task in pending_tasks(_tasks())] == ["t1", "t2"]


def test_planning_dates_cover_a_week():
    dates = planning_dates(SATURDAY)

    assert len(dates) == 7
    assert dates[0] == SATURDAY
    assert dates[-1] == date(2024, 1, 12)


def test_extract_json_object_ignores_surrounding_prose():
    text = 'Sure! Here is the plan:\n```json\n{"schedule": [], "warnings": ["tight week"]}\n```\nGood luck.'

    assert extract_json_object(text) == {"schedule": [], "warnings": ["tight week"]}


@pytest.mark.parametrize("text", ["", "no json here", "{not: valid}", None])
def test_extract_json_object_rejects_unusable_replies(text):
    with pytest.raises(GeneratorParseError):
        extract_json_object(text)


def test_prompt_lists_tasks_busy_slots_and_rules():
    busy = [BusySlot(day=date(2024, 1, 8), start_minute=14 * 60, end_minute=15 * 60, title="Standup")]

    prompt = build_schedule_prompt(pending_tasks(_tasks()), busy, ConstraintModel(), planning_dates(SATURDAY))

    assert "Quarterly report (priority: medium, estimate: 30 min, due: 2024-01-12)" in prompt
    assert "Fix login bug (priority: high, estimate: 90 min, due: none)" in prompt
    assert "Archive inbox" not in prompt
    assert "- 2024-01-08 14:00-15:00: Standup" in prompt
    assert "10:00-18:00 (breaks: 12:00-13:00; no work on: Saturday, Sunday)" in prompt
    assert "at most 2 hours" in prompt
    assert '"startTime": "HH:MM"' in prompt


def test_prompt_without_calendar_events():
    prompt = build_schedule_prompt(pending_tasks(_tasks()), [], ConstraintModel(), [SATURDAY])

    assert "No events" in prompt


def test_request_schedule_requires_api_key():
    settings = Settings(gemini_api_key=None, schedule_fallback_enabled=False)

    with pytest.raises(GeneratorNotConfigured) as exc_info:
        request_schedule(pending_tasks(_tasks()), [], ConstraintModel(), settings=settings, today=SATURDAY)

    assert exc_info.value.status_code == 500
    assert exc_info.value.public_message == "API key not configured"


def test_request_schedule_skips_model_without_tasks(monkeypatch):
    created = _patch_openai(monkeypatch, _FakeCompletions(content="{}"))
    settings = Settings(gemini_api_key="test-key")

    proposal = request_schedule([], [], ConstraintModel(), settings=settings, today=SATURDAY)

    assert proposal.schedule == []
    assert proposal.source == "empty"
    assert created == []


def test_request_schedule_calls_gemini(monkeypatch):
    reply = {
        "schedule": [
            {"taskId": "t2", "taskTitle": "Fix login bug", "date": "2024-01-08", "startTime": "10:00", "endTime": "11:30"},
            "stray text",
        ],
        "suggestions": ["Batch small tasks", 3],
        "warnings": "not a list",
    }
    completions = _FakeCompletions(content=f"Here you go:\n{json.dumps(reply)}")
    created = _patch_openai(monkeypatch, completions)
    settings = Settings(gemini_api_key="test-key", gemini_model="gemini-test")

    proposal = request_schedule(pending_tasks(_tasks()), [], ConstraintModel(), settings=settings, today=SATURDAY)

    assert proposal.source == "gemini"
    assert proposal.schedule == reply["schedule"]
    assert proposal.suggestions == ["Batch small tasks"]
    assert proposal.warnings == []
    assert created[0].kwargs["api_key"] == "test-key"
    assert created[0].kwargs["base_url"] == settings.gemini_base_url
    call = completions.calls[0]
    assert call["model"] == "gemini-test"
    assert call["temperature"] == 0.3
    assert "Fix login bug" in call["messages"][0]["content"]


def test_request_schedule_wraps_api_errors(monkeypatch):
    _patch_openai(monkeypatch, _FakeCompletions(error=openai.OpenAIError("quota exceeded")))
    settings = Settings(gemini_api_key="test-key")

    with pytest.raises(GeneratorFailed) as exc_info:
        request_schedule(pending_tasks(_tasks()), [], ConstraintModel(), settings=settings, today=SATURDAY)

    assert exc_info.value.status_code == 500
    assert exc_info.value.public_message == "AI API failed"


def test_request_schedule_rejects_unparseable_reply(monkeypatch):
    _patch_openai(monkeypatch, _FakeCompletions(content="I could not build a schedule."))
    settings = Settings(gemini_api_key="test-key")

    with pytest.raises(GeneratorParseError):
        request_schedule(pending_tasks(_tasks()), [], ConstraintModel(), settings=settings, today=SATURDAY)


def test_request_schedule_uses_fallback_when_enabled(monkeypatch):
    created = _patch_openai(monkeypatch, _FakeCompletions(content="{}"))
    settings = Settings(gemini_api_key=None, schedule_fallback_enabled=True)

    proposal = request_schedule(pending_tasks(_tasks()), [], ConstraintModel(), settings=settings, today=SATURDAY)

    assert proposal.source == "fallback"
    assert proposal.schedule
    assert created == []


def test_fallback_packs_by_priority_around_breaks_and_meetings():
    busy = [BusySlot(day=date(2024, 1, 8), start_minute=13 * 60, end_minute=14 * 60, title="Standup")]

    proposal = fallback_schedule(pending_tasks(_tasks()), busy, ConstraintModel(), today=SATURDAY)

    assert [(item["taskId"], item["date"], item["startTime"], item["endTime"]) for item in proposal.schedule] == [
        ("t2", "2024-01-08", "10:00", "12:00"),
        ("t1", "2024-01-08", "14:00", "15:00"),
    ]
    assert proposal.source == "fallback"
    assert proposal.warnings


def test_fallback_reports_tasks_that_do_not_fit():
    constraints = ConstraintModel.from_config({"workStart": "10:00", "workEnd": "11:00"})
    tasks = [TaskPayload(id=str(index), title=f"Task {index}", estimated_minutes=60) for index in range(8)]

    proposal = fallback_schedule(tasks, [], constraints, today=SATURDAY)

    # Saturday and Sunday are excluded, leaving five one-hour days.
    assert len(proposal.schedule) == 5
    assert "Task 5" in proposal.warnings[-1]


def test_fallback_slots_under_an_hour_survive_repair():
    constraints = ConstraintModel.from_config({"maxContinuousMinutes": 30})

    proposal = fallback_schedule(pending_tasks(_tasks()), [], constraints, today=SATURDAY)
    result = repair_schedule(proposal.schedule, constraints)

    assert [(item["startTime"], item["endTime"]) for item in proposal.schedule] == [
        ("10:30", "11:00"),
        ("11:30", "12:00"),
    ]
    assert result.rejected == []
    assert len(result.accepted) == 2


def test_fallback_output_is_accepted_as_proposed():
    busy = [BusySlot(day=date(2024, 1, 8), start_minute=13 * 60, end_minute=14 * 60 + 30, title="Standup")]
    constraints = ConstraintModel()

    proposal = fallback_schedule(pending_tasks(_tasks()), busy, constraints, today=SATURDAY)
    result = repair_schedule(proposal.schedule, constraints, busy)

    assert result.rejected == []
    assert [entry.start_time for entry in result.accepted] == [item["startTime"] for item in proposal.schedule]
