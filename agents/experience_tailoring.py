"""Tailor one work-history entry to the target job.

Analyst plans once (using the shared ATS keywords), Writer rewrites the
description and achievements as JSON, Verifier fact-checks against the
original entry. The entry's technologies are then reordered separately.
"""

from __future__ import annotations

import json
from typing import Optional

from agents.common_prompts import VERDICT_RULES, format_experience
from agents.keyword_extraction import extract_keywords
from agents.runtime import ProgressFn, StageError, StageRuntime
from agents.tech_stack_sorting import sort_tech_stack
from core.context import OptimizationContext
from core.critique_loop import LoopPolicy, OutputParseError
from core.json_utils import parse_json_object
from core.llm_client import AsyncLLMClient
from core.models import AgentConfig, AgentRole, KeywordExtractionResult, TailoredExperience, WorkExperience
from core.obs import Logger

ANALYST_PROMPT = """
You are an experience alignment analyzer. Compare one work-history entry with
the job description and the ATS keywords. List which responsibilities and
achievements map to the JD, which keywords can be woven in truthfully, and
what should be de-emphasized. Never suggest adding facts that are not in the entry.
"""

WRITER_PROMPT = """
You are a resume experience writer. Rewrite the entry's description (2-3
sentences) and its achievements (one strong bullet per original achievement,
action verb first, quantified where the original gives numbers) to match the
job description, following the analysis.

Output STRICT JSON only:
{"description": "...", "achievements": ["...", "..."]}
"""

VERIFIER_PROMPT = f"""
You are a fact checker and relevance evaluator for resume experience entries.
Compare the tailored entry with the original entry:
1. No invented employers, titles, metrics, dates or technologies.
2. Every original achievement is still represented.
3. The wording is clearly relevant to the job description.
4. The output is the requested JSON object.

{VERDICT_RULES}
"""


class ExperienceTailoringError(StageError):
    pass


def parse_tailored(raw: str) -> tuple[str, list[str]]:
    data = parse_json_object(raw, OutputParseError)
    description = str(data.get("description") or "").strip()
    if not description:
        raise OutputParseError("Tailored description is empty")
    achievements = data.get("achievements", [])
    if not isinstance(achievements, list):
        raise OutputParseError("achievements must be a JSON array")
    return description, [str(a).strip() for a in achievements if str(a).strip()]


def _keywords_block(keywords: KeywordExtractionResult) -> str:
    return json.dumps(
        {
            "missing": keywords.missing,
            "critical": keywords.critical,
            "niceToHave": keywords.nice_to_have,
        },
        ensure_ascii=False,
    )


async def tailor_work_experience(
    experience: WorkExperience,
    job_title: str,
    job_description: str,
    config: AgentConfig,
    on_progress: Optional[ProgressFn] = None,
    *,
    context: Optional[OptimizationContext] = None,
    llm: Optional[AsyncLLMClient] = None,
    policy: Optional[LoopPolicy] = None,
    logger: Optional[Logger] = None,
) -> TailoredExperience:
    jd = (job_description or "").strip()
    if not jd:
        raise ExperienceTailoringError("job_description must be a non-empty string")

    rt = StageRuntime.resolve(config, on_progress, llm=llm, policy=policy, logger=logger)
    achievements = [a.text for a in experience.key_achievements]

    keywords = context.extracted_keywords if context is not None else None
    if keywords is None:
        keywords = await extract_keywords(
            jd, achievements, config, on_progress, llm=rt.llm, policy=rt.policy, logger=rt.logger
        )

    entry = format_experience(experience)
    with rt.span("experience_tailoring", organization=experience.organization):
        loop = rt.loop(
            "experience_tailoring",
            analyst=rt.agent(AgentRole.ANALYST, ANALYST_PROMPT),
            analyst_prompt=(
                f"Target job title: {job_title}\n\nJob Description:\n{jd}\n\n"
                f"ATS keywords:\n{_keywords_block(keywords)}\n\nEntry:\n{entry}"
            ),
            producer=rt.agent(AgentRole.WRITER, WRITER_PROMPT, temperature=0.4),
            first_prompt=lambda analysis: (
                f"Analysis:\n{analysis}\n\nOriginal entry:\n{entry}\n\nTarget job title: {job_title}"
            ),
            reviewer=rt.agent(AgentRole.VERIFIER, VERIFIER_PROMPT, temperature=0.0),
            review_prompt=lambda draft: f"Original entry:\n{entry}\n\nJob Description:\n{jd}\n\nTailored entry:\n{draft}",
            parse=parse_tailored,
            producer_label=f"Tailoring {experience.organization or 'experience'}...",
            reviewer_label="Fact-checking...",
        )
        description, tailored_achievements = (await loop.run()).value

    tech_stack = None
    if experience.technologies is not None:
        tech_stack = await sort_tech_stack(
            experience.technologies, jd, config, on_progress, llm=rt.llm, policy=rt.policy, logger=rt.logger
        )
    rt.report("Experience tailored.", done=True)
    return TailoredExperience(description=description, achievements=tailored_achievements, tech_stack=tech_stack)


def apply_tailoring(experience: WorkExperience, tailored: TailoredExperience) -> WorkExperience:
    """Copy of `experience` with the tailored fields applied; other fields are kept."""
    update = {
        "description": tailored.description,
        "key_achievements": [{"text": text} for text in tailored.achievements],
    }
    if tailored.tech_stack is not None:
        update["technologies"] = tailored.tech_stack
    return WorkExperience.model_validate({**experience.model_dump(), **update})
