"""
Tests for learning plan generation: provider retries, fallback and normalization.
"""
import json
import threading
from datetime import date

import pytest

from app.llm.provider import LLMProviderError
from app.services.plan_generator import (
    PlanSource,
    PlanValidationError,
    SkillGapAnalysis,
    build_plan_spec,
    build_prompt,
    generate_plan,
    parse_plan_response,
)
from conftest import FakeLLMProvider


START = date(2026, 3, 2)


def make_spec(**overrides):
    fields = {"role": "Data Analyst", "duration_days": 3, "start_date": START}
    fields.update(overrides)
    return build_plan_spec(**fields)


def provider_plan(days):
    return json.dumps({"summary": "Provider plan", "days": days})


def test_no_provider_builds_fallback_plan():
    """Without credentials the template plan is used: N days of 3 tasks."""
    spec = make_spec(duration_days=14)
    result = generate_plan(spec, provider=None)

    assert result.source == PlanSource.FALLBACK
    assert result.used_fallback is True
    assert result.attempts == 0
    assert len(result.plan.days) == 14
    assert all(len(day.tasks) == 3 for day in result.plan.days)
    assert [day.day_index for day in result.plan.days] == list(range(14))
    assert result.plan.days[0].date == "2026-03-02"
    assert result.plan.days[13].date == "2026-03-15"
    assert len(result.plan.flatten_tasks()) == 42


def test_every_task_duration_within_bounds():
    """Every generated task lasts between 15 and 480 minutes."""
    result = generate_plan(make_spec(duration_days=56))
    for task in result.plan.flatten_tasks():
        assert 15 <= task.duration_mins <= 480


def test_provider_plan_accepted():
    """A valid provider response is used as-is."""
    provider = FakeLLMProvider([provider_plan([
        {"dayIndex": 0, "date": "2026-03-02", "focus": "SQL basics",
         "tasks": [{"dayIndex": 0, "title": "SELECT queries", "durationMins": 60, "resourceLinks": []}]},
        {"dayIndex": 1, "date": "2026-03-03", "focus": "Joins",
         "tasks": [{"dayIndex": 1, "title": "Practice joins", "durationMins": 90}]},
        {"dayIndex": 2, "date": "2026-03-04", "focus": "Dashboards",
         "tasks": [{"dayIndex": 2, "title": "Build a dashboard", "durationMins": 120}]},
    ])])

    result = generate_plan(make_spec(), provider=provider)

    assert result.source == PlanSource.AI
    assert result.attempts == 1
    assert result.plan.summary == "Provider plan"
    assert [day.focus for day in result.plan.days] == ["SQL basics", "Joins", "Dashboards"]
    assert provider.calls[0]["json_mode"] is True


def test_provider_values_are_normalized():
    """Durations are clamped, links filtered and missing indexes assigned."""
    provider = FakeLLMProvider([provider_plan([
        {"tasks": [
            {"title": "Numeric string", "durationMins": "45"},
            {"title": "Too short", "durationMins": 5},
            {"title": "Too long", "durationMins": 1000},
            {"title": "No duration"},
            {"title": "   "},
            {"title": "Links", "durationMins": 30, "resourceLinks": [
                "not a url", "https://a.example.com", "https://b.example.com",
                "https://c.example.com", "https://d.example.com",
            ]},
        ]},
        {"dayIndex": "oops", "tasks": [{"title": "Second day", "durationMins": 60}]},
    ])])

    result = generate_plan(make_spec(duration_days=2), provider=provider)
    first, second = result.plan.days

    assert first.day_index == 0
    assert second.day_index == 1
    assert [t.title for t in first.tasks] == ["Numeric string", "Too short", "Too long", "No duration", "Links"]
    assert [t.duration_mins for t in first.tasks] == [45, 15, 480, 60, 30]
    assert first.tasks[-1].resource_links == [
        "https://a.example.com", "https://b.example.com", "https://c.example.com",
    ]
    assert first.date == "2026-03-02"
    assert second.tasks[0].title == "Second day"


def test_provider_plan_padded_and_truncated():
    """Missing days are filled from the template and extra days dropped."""
    provider = FakeLLMProvider([provider_plan([
        {"dayIndex": 0, "tasks": [{"title": "Only day", "durationMins": 60}]},
        {"dayIndex": 7, "tasks": [{"title": "Beyond range", "durationMins": 60}]},
        {"dayIndex": 2, "tasks": []},
    ])])

    result = generate_plan(make_spec(duration_days=3), provider=provider)

    assert len(result.plan.days) == 3
    assert result.plan.days[0].tasks[0].title == "Only day"
    assert len(result.plan.days[1].tasks) == 3
    assert len(result.plan.days[2].tasks) == 3
    assert all("Beyond range" != t.title for t in result.plan.flatten_tasks())


def test_provider_failures_fall_back_after_three_attempts():
    """Three failed attempts produce the fallback plan and one error per attempt."""
    provider = FakeLLMProvider([
        LLMProviderError("timeout"),
        "not json at all",
        json.dumps({"days": []}),
    ])

    result = generate_plan(make_spec(), provider=provider)

    assert result.source == PlanSource.FALLBACK
    assert result.attempts == 3
    assert len(result.errors) == 3
    assert len(provider.calls) == 3
    assert len(result.plan.days) == 3


def test_provider_recovers_on_second_attempt():
    provider = FakeLLMProvider([
        "{broken",
        provider_plan([{"dayIndex": 0, "tasks": [{"title": "Recovered", "durationMins": 60}]}]),
    ])

    result = generate_plan(make_spec(duration_days=1), provider=provider)

    assert result.source == PlanSource.AI
    assert result.attempts == 2
    assert result.plan.days[0].tasks[0].title == "Recovered"


def test_cancelled_generation_skips_provider():
    """A set cancel event stops further attempts and falls back."""
    provider = FakeLLMProvider([provider_plan([{"tasks": [{"title": "x"}]}])])
    cancel = threading.Event()
    cancel.set()

    result = generate_plan(make_spec(), provider=provider, cancel_event=cancel)

    assert provider.calls == []
    assert result.source == PlanSource.FALLBACK


def test_parse_plan_response_accepts_markdown_fence():
    text = "```json\n" + provider_plan([{"tasks": [{"title": "Fenced"}]}]) + "\n```"
    raw = parse_plan_response(text)
    assert raw.days[0].tasks[0].title == "Fenced"


@pytest.mark.parametrize("fields", [
    {"role": "   "},
    {"duration_days": 0},
    {"duration_days": 57},
    {"start_date": "not-a-date"},
    {"daily_hours": 0},
])
def test_invalid_spec_rejected(fields):
    """Invalid requests raise PlanValidationError before any provider call."""
    with pytest.raises(PlanValidationError):
        make_spec(**fields)


def test_prompt_includes_skill_gaps():
    gaps = SkillGapAnalysis.from_resume_analysis({
        "missingCoreSkills": ["SQL", "Tableau"],
        "experienceGaps": [{"title": "Stakeholder reporting", "description": "No BI work", "urgency": "high"}],
        "scores": {"atsScore": 62, "overallFitScore": 55},
        "summary": "Junior analyst",
    })
    prompt = build_prompt(make_spec(skill_gaps=gaps, focus_areas=["Dashboards"]))

    assert "Missing Core Skills: SQL, Tableau" in prompt
    assert "- Stakeholder reporting: No BI work (Priority: high)" in prompt
    assert "ATS Score: 62%" in prompt
    assert "Focus areas to emphasise: Dashboards." in prompt
    assert "Return exactly 3 entries" in prompt


def test_empty_resume_analysis_ignored():
    assert SkillGapAnalysis.from_resume_analysis({}) is None
    assert SkillGapAnalysis.from_resume_analysis(None) is None


def test_fallback_focus_uses_skill_gaps():
    gaps = SkillGapAnalysis.from_resume_analysis({"missingCoreSkills": ["SQL"]})
    result = generate_plan(make_spec(skill_gaps=gaps))

    assert result.plan.days[0].focus == "Kick-off & baseline assessment"
    assert result.plan.days[1].focus == "Skill deep dive: SQL"
