"""
Learning plan generation engine.

Turns a goal spec (role, duration, start date, optional skill-gap analysis) into a
validated day-by-day plan. The text-generation provider is tried a bounded number of
times; if every attempt fails, or no provider is configured, a deterministic template
plan is built instead so valid input never produces an error.
"""
import json
import math
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple

from pydantic import BaseModel, Field, AliasChoices, HttpUrl, TypeAdapter, ValidationError, field_validator

from app.core.config import PLAN_GENERATION_ATTEMPTS
from app.llm.provider import LLMProvider
from app.llm.router import get_model_for_feature
from app.schemas.planner import RawPlan, RawPlanDay, RawPlanTask, Plan, PlanDay, PlanTask

logger = logging.getLogger(__name__)

MIN_DURATION_DAYS = 1
MAX_DURATION_DAYS = 56
MIN_TASK_MINUTES = 15
MAX_TASK_MINUTES = 8 * 60
DEFAULT_TASK_MINUTES = 60
MAX_RESOURCE_LINKS = 3
DEFAULT_DAILY_HOURS = 5
MAX_DAILY_HOURS = 16

SYSTEM_PROMPT = (
    "You are an AI career coach generating structured learning planners. "
    "Always respond with valid JSON that matches the requested schema. Do not include markdown fences."
)

PLAN_JSON_SCHEMA = (
    '{"summary": string, "days": [{"dayIndex": number, "date": string, "focus": string, '
    '"tasks": [{"dayIndex": number, "title": string, "description": string, '
    '"durationMins": number, "resourceLinks": string[]}]}]}'
)

_url_adapter = TypeAdapter(HttpUrl)


class PlanValidationError(ValueError):
    """Raised when a plan request is malformed. No provider call is made."""


class PlanSource(str, Enum):
    AI = "ai"
    FALLBACK = "fallback"


# ============================================
# Input spec
# ============================================

class ExperienceGap(BaseModel):
    title: str = ""
    description: str = ""
    urgency: str = Field("medium", validation_alias=AliasChoices("urgency", "priority"))


class SkillGapAnalysis(BaseModel):
    """Subset of a parsed resume analysis that drives remediation-oriented plans."""
    missing_core_skills: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("missingCoreSkills", "missing_core_skills")
    )
    experience_gaps: List[ExperienceGap] = Field(
        default_factory=list, validation_alias=AliasChoices("experienceGaps", "experience_gaps")
    )
    ats_score: Optional[float] = None
    overall_fit_score: Optional[float] = None
    summary: Optional[str] = None

    @classmethod
    def from_resume_analysis(cls, analysis: Optional[Dict[str, Any]]) -> Optional["SkillGapAnalysis"]:
        """Build from a resume parser document; returns None when nothing usable is present."""
        if not isinstance(analysis, dict):
            return None
        scores = analysis.get("scores") if isinstance(analysis.get("scores"), dict) else {}
        try:
            gaps = cls.model_validate({
                **analysis,
                "ats_score": scores.get("atsScore"),
                "overall_fit_score": scores.get("overallFitScore"),
            })
        except ValidationError as e:
            logger.warning(f"Ignoring malformed resume analysis: {e.error_count()} errors")
            return None
        if not (gaps.missing_core_skills or gaps.experience_gaps or gaps.summary):
            return None
        return gaps


class PlanSpec(BaseModel):
    role: str = Field(..., max_length=200)
    duration_days: int = Field(..., ge=MIN_DURATION_DAYS, le=MAX_DURATION_DAYS)
    start_date: date
    daily_hours: Optional[float] = Field(None, gt=0, le=MAX_DAILY_HOURS)
    experience_summary: Optional[str] = None
    focus_areas: List[str] = Field(default_factory=list)
    additional_context: Optional[str] = None
    skill_gaps: Optional[SkillGapAnalysis] = None

    @field_validator("role")
    @classmethod
    def role_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("role must not be empty")
        return value

    @field_validator("focus_areas")
    @classmethod
    def drop_blank_focus_areas(cls, value: List[str]) -> List[str]:
        return [area.strip() for area in value if area and area.strip()]


def build_plan_spec(**fields) -> PlanSpec:
    """
    Validate plan request fields.

    Raises:
        PlanValidationError: describing every invalid field
    """
    try:
        return PlanSpec(**fields)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise PlanValidationError(f"Invalid plan request - {problems}") from e


@dataclass
class PlanGenerationResult:
    """Outcome of a generation run. `source` says whether the provider plan or the template was used."""
    plan: Plan
    source: PlanSource
    attempts: int = 0
    errors: List[str] = field(default_factory=list)
    model: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.source == PlanSource.FALLBACK


# ============================================
# Prompt
# ============================================

def build_prompt(spec: PlanSpec) -> str:
    """Build the plan instruction, embedding skill-gap data when available."""
    daily_hours = spec.daily_hours or DEFAULT_DAILY_HOURS
    lines = [
        f"Create a daily learning planner for someone aiming for the role: {spec.role}.",
        f"The planner should cover {spec.duration_days} consecutive days starting on {spec.start_date.isoformat()}.",
        "Respond strictly as JSON matching this schema:",
        PLAN_JSON_SCHEMA,
        f"Return exactly {spec.duration_days} entries in days, with dayIndex counting from 0.",
        "Ensure each task has a title, concise description (<160 chars), realistic duration in minutes, and 0-3 resource links.",
        "Limit resource links to reputable sources (YouTube, free courses, docs).",
        f"Keep total duration per day under {daily_hours:g} hours.",
    ]

    if spec.experience_summary:
        lines.append(f"Candidate background: {spec.experience_summary}")

    if spec.focus_areas:
        lines.append(f"Focus areas to emphasise: {', '.join(spec.focus_areas)}.")

    if spec.additional_context:
        lines.append(f"Additional context: {spec.additional_context}")

    gaps = spec.skill_gaps
    if gaps:
        lines.append("")
        lines.append("Resume Analysis Data:")
        lines.append(f"ATS Score: {_format_score(gaps.ats_score)}")
        lines.append(f"Overall Fit Score: {_format_score(gaps.overall_fit_score)}")
        if gaps.missing_core_skills:
            lines.append(f"Missing Core Skills: {', '.join(gaps.missing_core_skills)}")
        if gaps.experience_gaps:
            lines.append("Experience Gaps:")
            for gap in gaps.experience_gaps:
                lines.append(f"- {gap.title}: {gap.description} (Priority: {gap.urgency})")
        if gaps.summary:
            lines.append(f"Resume Summary: {gaps.summary}")
        lines.append(
            "Focus the learning plan on addressing these skill gaps and experience gaps. "
            "Prioritize the missing core skills and high-priority experience gaps."
        )

    lines.append("Return valid JSON only.")
    return "\n".join(lines)


def _format_score(score: Optional[float]) -> str:
    return f"{score:g}%" if score is not None else "N/A"


# ============================================
# Provider attempts
# ============================================

def parse_plan_response(text: str) -> RawPlan:
    """
    Parse and validate a provider response.

    Raises:
        ValueError: if the text is not a JSON object (json.JSONDecodeError is a ValueError)
        ValidationError: if the object does not match the plan schema
    """
    fenced = re.search(r'```(?:json)?\s*(\{.*\})\s*```', text or "", re.DOTALL)
    payload = json.loads(fenced.group(1) if fenced else text)
    if not isinstance(payload, dict):
        raise ValueError("Plan response is not a JSON object")
    return RawPlan.model_validate(payload)


def request_plan_from_provider(
    provider: LLMProvider,
    prompt: str,
    model: str,
    max_attempts: int = PLAN_GENERATION_ATTEMPTS,
    cancel_event: Optional[threading.Event] = None,
) -> Tuple[Optional[RawPlan], int, List[str]]:
    """
    Ask the provider for a plan up to `max_attempts` times.

    Each attempt is independent. Transport errors, unparsable JSON and schema
    violations all count as a failed attempt.

    Returns:
        Tuple of (raw plan or None, attempts made, one error message per failed attempt)
    """
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]
    errors: List[str] = []
    attempts = 0

    for attempt in range(1, max_attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            errors.append("cancelled before attempt")
            logger.info(f"Plan generation cancelled before attempt {attempt}")
            break

        attempts = attempt
        try:
            response = provider.chat(
                messages=messages,
                model=model,
                temperature=0.2,
                max_tokens=8192,
                json_mode=True,
            )
        except Exception as e:
            errors.append(f"attempt {attempt}: provider error: {e}")
            logger.warning(f"Plan provider call failed: attempt={attempt}, error={type(e).__name__}: {e}")
            continue

        if not response.content or not response.content.strip():
            errors.append(f"attempt {attempt}: empty response")
            logger.warning(f"Plan provider returned empty content: attempt={attempt}")
            continue

        try:
            raw_plan = parse_plan_response(response.content)
        except ValidationError as e:
            errors.append(f"attempt {attempt}: schema error: {e.error_count()} problems")
            logger.warning(f"Plan response failed schema validation: attempt={attempt}, errors={e.error_count()}")
            continue
        except ValueError as e:
            errors.append(f"attempt {attempt}: invalid JSON: {e}")
            logger.warning(f"Plan response was not valid JSON: attempt={attempt}")
            continue

        logger.info(
            f"Plan provider response accepted: attempt={attempt}, days={len(raw_plan.days)}, "
            f"tokens={response.tokens_in + response.tokens_out}"
        )
        return raw_plan, attempts, errors

    return None, attempts, errors


# ============================================
# Fallback template
# ============================================

def _fallback_tasks(role: str, day_index: int) -> List[RawPlanTask]:
    return [
        RawPlanTask(
            day_index=day_index,
            title=f"Research core responsibilities for {role}",
            description="Read recent job postings and compile the top required skills.",
            duration_mins=90,
            resource_links=["https://www.levels.fyi/jobs"],
        ),
        RawPlanTask(
            day_index=day_index,
            title=f"Hands-on exercise Day {day_index + 1}",
            description="Build a small project segment that reflects a typical daily task.",
            duration_mins=120,
            resource_links=["https://www.frontendmentor.io/challenges"],
        ),
        RawPlanTask(
            day_index=day_index,
            title="Reflection & notes",
            description="Summarize learnings and identify gaps to address next.",
            duration_mins=30,
            resource_links=[],
        ),
    ]


def _fallback_focus(spec: PlanSpec, day_index: int) -> str:
    if day_index == 0:
        return "Kick-off & baseline assessment"
    topics = list(spec.focus_areas)
    if spec.skill_gaps:
        topics.extend(skill for skill in spec.skill_gaps.missing_core_skills if skill not in topics)
    if topics:
        return f"Skill deep dive: {topics[(day_index - 1) % len(topics)]}"
    return f"Skill deep dive - Day {day_index + 1}"


def _fallback_day(spec: PlanSpec, day_index: int) -> RawPlanDay:
    return RawPlanDay(
        day_index=day_index,
        date=(spec.start_date + timedelta(days=day_index)).isoformat(),
        focus=_fallback_focus(spec, day_index),
        tasks=_fallback_tasks(spec.role, day_index),
    )


def build_fallback_plan(spec: PlanSpec) -> RawPlan:
    """Deterministic plan: the same three-task template for every day."""
    return RawPlan(
        summary=f"Auto-generated {spec.duration_days}-day planner for {spec.role}.",
        days=[_fallback_day(spec, i) for i in range(spec.duration_days)],
    )


# ============================================
# Normalization
# ============================================

def _coerce_int(value: Any) -> Optional[int]:
    """Accept ints, finite floats and numeric strings; anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(round(value)) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            return _coerce_int(float(value.strip()))
        except ValueError:
            return None
    return None


def _clamp_duration(value: Any) -> int:
    minutes = _coerce_int(value)
    if minutes is None:
        minutes = DEFAULT_TASK_MINUTES
    return max(MIN_TASK_MINUTES, min(MAX_TASK_MINUTES, minutes))


def _is_valid_url(link: Any) -> bool:
    if not isinstance(link, str) or not link.strip():
        return False
    try:
        _url_adapter.validate_python(link.strip())
        return True
    except ValidationError:
        return False


def _clean_links(links: Any) -> List[str]:
    if not isinstance(links, list):
        return []
    cleaned: List[str] = []
    for link in links:
        if _is_valid_url(link) and link.strip() not in cleaned:
            cleaned.append(link.strip())
    return cleaned[:MAX_RESOURCE_LINKS]


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clean_date(value: Any, fallback: date) -> str:
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10]).isoformat()
        except ValueError:
            pass
    return fallback.isoformat()


def _normalize_tasks(raw_tasks: List[RawPlanTask], day_index: int) -> List[PlanTask]:
    tasks = []
    for raw_task in raw_tasks:
        title = raw_task.title.strip()
        if not title:
            continue
        tasks.append(PlanTask(
            day_index=day_index,
            title=title,
            description=_clean_text(raw_task.description),
            duration_mins=_clamp_duration(raw_task.duration_mins),
            resource_links=_clean_links(raw_task.resource_links),
        ))
    return tasks


def normalize_plan(raw_plan: RawPlan, spec: PlanSpec) -> Plan:
    """
    Turn a raw plan into exactly `spec.duration_days` days, each with at least one usable task.

    Days without a usable index take their list position. Days beyond the requested
    duration are dropped; missing or empty days are refilled from the template.
    """
    collected: Dict[int, PlanDay] = {}

    for position, raw_day in enumerate(raw_plan.days):
        day_index = _coerce_int(raw_day.day_index)
        if day_index is None or day_index < 0:
            day_index = position
        if day_index >= spec.duration_days:
            continue

        tasks = _normalize_tasks(raw_day.tasks, day_index)
        if day_index in collected:
            collected[day_index].tasks.extend(tasks)
            continue

        collected[day_index] = PlanDay(
            day_index=day_index,
            date=_clean_date(raw_day.date, spec.start_date + timedelta(days=day_index)),
            focus=_clean_text(raw_day.focus),
            tasks=tasks,
        )

    days = []
    for day_index in range(spec.duration_days):
        day = collected.get(day_index)
        if day is None:
            template = _fallback_day(spec, day_index)
            day = PlanDay(
                day_index=day_index,
                date=template.date,
                focus=template.focus,
                tasks=_normalize_tasks(template.tasks, day_index),
            )
        elif not day.tasks:
            day.tasks = _normalize_tasks(_fallback_tasks(spec.role, day_index), day_index)
        days.append(day)

    summary = _clean_text(raw_plan.summary) or f"{spec.duration_days}-day learning plan for {spec.role}."
    return Plan(summary=summary, days=days)


# ============================================
# Entry point
# ============================================

def generate_plan(
    spec: PlanSpec,
    provider: Optional[LLMProvider] = None,
    cancel_event: Optional[threading.Event] = None,
    max_attempts: int = PLAN_GENERATION_ATTEMPTS,
) -> PlanGenerationResult:
    """
    Generate a learning plan.

    Args:
        spec: Validated plan spec (see build_plan_spec)
        provider: Text-generation provider; None means no credentials are configured
        cancel_event: When set, remaining provider attempts are skipped
        max_attempts: Provider attempts before falling back

    Returns:
        PlanGenerationResult with the normalized plan and whether it came from the provider
    """
    model = get_model_for_feature("learning_plan")
    prompt = build_prompt(spec)

    raw_plan: Optional[RawPlan] = None
    attempts = 0
    errors: List[str] = []

    if provider is None:
        errors.append("no text-generation provider configured")
        logger.info(f"No plan provider configured, using fallback plan: role={spec.role}, days={spec.duration_days}")
    else:
        raw_plan, attempts, errors = request_plan_from_provider(
            provider, prompt, model, max_attempts=max_attempts, cancel_event=cancel_event
        )

    if raw_plan is not None:
        plan = normalize_plan(raw_plan, spec)
        return PlanGenerationResult(plan=plan, source=PlanSource.AI, attempts=attempts, errors=errors, model=model)

    if provider is not None:
        logger.warning(
            f"Plan provider failed after {attempts} attempts, using fallback plan: "
            f"role={spec.role}, days={spec.duration_days}"
        )
    plan = normalize_plan(build_fallback_plan(spec), spec)
    return PlanGenerationResult(plan=plan, source=PlanSource.FALLBACK, attempts=attempts, errors=errors, model=None)
