"""Skill group ordering and reassembly into the profile's SkillGroup shape."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from pydantic import ValidationError

from agents.common_prompts import VERDICT_RULES, format_skill_groups
from agents.runtime import ProgressFn, StageError, StageRuntime
from core.critique_loop import LoopPolicy, OutputParseError
from core.json_utils import parse_json_object
from core.llm_client import AsyncLLMClient
from core.models import AgentConfig, AgentRole, Skill, SkillGroup, SkillsSortResult
from core.obs import Logger

_log = logging.getLogger(__name__)

ANALYST_PROMPT = """
You are a Skill Sorting Expert (the Brain). Analyze the job description and
decide the most relevant order of the resume's skill groups and of the skills
within each group.
RULES:
1. Order groups by JD relevance.
2. Order skills within each group by JD relevance.
3. Identify technologies the JD asks for that are missing from the list.
4. Never suggest removing an existing skill.
OUTPUT: a clean markdown report of the optimized structure. No JSON yet.
"""

PRODUCER_PROMPT = """
You are a Data Architect (the Scribe). Convert the skill analysis and the
original data into STRICT JSON.
RULES:
1. Use the optimized order and any new skills from the analysis.
2. Include ALL original groups and skills.
3. Output only valid JSON, no preamble, no code fences.
TARGET FORMAT:
{
  "groupOrder": ["Group 1", "Group 2"],
  "skillOrder": {
    "Group 1": ["skillA", "skillB"],
    "Group 2": ["skillC"]
  }
}
"""

VALIDATOR_PROMPT = f"""
You are a Data Validator (the Editor). Verify the generated skill JSON against
the original data:
1. Valid JSON syntax?
2. All original groups present?
3. No original skills lost?
4. Standard technology naming?

{VERDICT_RULES}
"""


class SkillsSortError(StageError):
    pass


def parse_sort_result(raw: str) -> SkillsSortResult:
    data = parse_json_object(raw, OutputParseError)
    try:
        result = SkillsSortResult.model_validate(data)
    except ValidationError as exc:
        raise OutputParseError(f"Invalid skills sort payload: {exc}") from exc
    if not result.group_order:
        raise OutputParseError("groupOrder is empty")
    return result


def reassemble_skill_groups(
    result: SkillsSortResult, original_groups: Sequence[SkillGroup]
) -> list[SkillGroup]:
    """Rebuild SkillGroups in `group_order`.

    Highlights are copied from the original group's skill with identical text.
    Renamed or new groups start without highlights; groups the sorter omitted
    are not restored.
    """
    by_title = {g.title: g for g in original_groups}
    groups = []
    for title in result.group_order:
        original = by_title.get(title)
        highlights = {s.text: s.highlight for s in original.skills} if original else {}
        groups.append(
            SkillGroup(
                title=title,
                skills=[Skill(text=text, highlight=highlights.get(text)) for text in result.skill_order.get(title, [])],
            )
        )
    dropped = set(by_title) - set(result.group_order)
    if dropped:
        _log.info("reassemble_skill_groups: sorter omitted groups %s", sorted(dropped))
    return groups


async def sort_skill_groups(
    skill_groups: Sequence[SkillGroup],
    job_description: str,
    config: AgentConfig,
    on_progress: Optional[ProgressFn] = None,
    *,
    llm: Optional[AsyncLLMClient] = None,
    policy: Optional[LoopPolicy] = None,
    logger: Optional[Logger] = None,
) -> SkillsSortResult:
    """Return the new group and skill order; no groups means no calls."""
    if not skill_groups:
        return SkillsSortResult()
    jd = (job_description or "").strip()
    if not jd:
        raise SkillsSortError("job_description must be a non-empty string")

    rt = StageRuntime.resolve(config, on_progress, llm=llm, policy=policy, logger=logger)
    original = format_skill_groups(skill_groups)
    with rt.span("skills_sorting", groups=len(skill_groups)):
        rt.report("[1/3] Brain: analyzing job description and skills...")
        loop = rt.loop(
            "skills_sorting",
            analyst=rt.agent(AgentRole.ANALYST, ANALYST_PROMPT),
            analyst_prompt=f"JOB DESCRIPTION:\n{jd}\n\nCURRENT SKILLS:\n{original}",
            producer=rt.agent(AgentRole.PRODUCER, PRODUCER_PROMPT, temperature=0.0),
            first_prompt=lambda analysis: f"Original Data:\n{original}\n\nOptimization Analysis:\n{analysis}",
            reviewer=rt.agent(AgentRole.VALIDATOR, VALIDATOR_PROMPT, temperature=0.0),
            review_prompt=lambda draft: f"Original Data:\n{original}\n\nGenerated JSON:\n{draft}",
            retry_prompt=lambda draft, critique: (
                f"Data review failed. Fix the JSON based on these critiques:\n{critique}\n\n"
                "Keep the optimized structure from the analysis."
            ),
            parse=parse_sort_result,
            producer_label="Scribe: constructing JSON output...",
            reviewer_label="Editor: validating data integrity...",
        )
        result = (await loop.run()).value
    rt.report("Skills optimized, structured, and verified.", done=True)
    return result
