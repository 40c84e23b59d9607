"""Shared prompt fragments and profile formatters for stage agents."""

from __future__ import annotations

import datetime
import json
from typing import Iterable

from core.models import Profile, SkillGroup, WorkExperience

VERDICT_RULES = (
    'If the output meets every criterion, respond with "APPROVED" only. '
    'Otherwise respond with "CRITIQUE: " followed by the specific problems to fix.'
)

PLAIN_TEXT_RULES = (
    "Return only the requested text. No preamble, no explanation, no markdown "
    "formatting unless explicitly requested."
)


def skill_groups_payload(groups: Iterable[SkillGroup]) -> list[dict[str, object]]:
    return [{"title": g.title, "skills": [s.text for s in g.skills]} for g in groups]


def format_skill_groups(groups: Iterable[SkillGroup]) -> str:
    return json.dumps(skill_groups_payload(groups), ensure_ascii=False)


def format_experience(exp: WorkExperience) -> str:
    years = " - ".join(y for y in (exp.start_year, exp.end_year) if y)
    header = f"{exp.position or 'Role'} at {exp.organization or 'Unknown'}"
    if years:
        header += f" ({years})"
    lines = [header]
    if exp.description:
        lines.append(exp.description)
    lines.extend(f"- {a.text}" for a in exp.key_achievements)
    if exp.technologies:
        lines.append("Tech: " + ", ".join(exp.technologies))
    return "\n".join(lines)


def years_of_experience(profile: Profile, today: datetime.date | None = None) -> int | None:
    """Years since the earliest parseable start year, or None."""
    starts: list[int] = []
    for exp in profile.work_experience:
        raw = (exp.start_year or "").strip()[:4]
        if raw.isdigit():
            starts.append(int(raw))
    if not starts:
        return None
    year = (today or datetime.date.today()).year
    return max(year - min(starts), 0)


def format_profile_overview(profile: Profile) -> str:
    parts = []
    if profile.name:
        parts.append(f"Name: {profile.name}")
    if profile.position:
        parts.append(f"Current position: {profile.position}")
    years = years_of_experience(profile)
    if years is not None:
        parts.append(f"Years of experience: {years}")
    if profile.summary:
        parts.append(f"Summary: {profile.summary}")
    if profile.work_experience:
        parts.append("Work experience:\n" + "\n\n".join(format_experience(e) for e in profile.work_experience))
    skills = profile.skill_names()
    if skills:
        parts.append("Skills: " + ", ".join(skills))
    return "\n\n".join(parts) or "(no profile details provided)"
