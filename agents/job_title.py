"""Job title generation: Analyst plans once, Refiner drafts, Reviewer checks."""

from __future__ import annotations

import re
from typing import Optional

from agents.common_prompts import VERDICT_RULES, format_profile_overview
from agents.runtime import ProgressFn, StageError, StageRuntime
from core.critique_loop import LoopPolicy, OutputParseError
from core.llm_client import AsyncLLMClient
from core.models import AgentConfig, AgentRole, Profile
from core.obs import Logger

ANALYST_PROMPT = """
You are a career analyst extracting the core role title a candidate should
target. Compare the job description with the candidate's experience and
describe, in a few sentences, the seniority, domain and specialisation the
title should convey.
"""

WRITER_PROMPT = """
You are a professional resume writer creating a job title for the top of a
resume. Use the analysis to write ONE job title, at most 6 words, that matches
the job description while staying truthful to the candidate's experience.
Output plain text only: no markdown, no quotes, no explanation.
"""

REVIEWER_PROMPT = f"""
You are reviewing a generated job title. Check that it:
1. Is a single line of plain text with no markdown characters.
2. Has at most 6 words.
3. Aligns with the job description and the candidate's seniority.

{VERDICT_RULES}
"""

_MARKDOWN_PATTERNS = (
    re.compile(r"\*\*(.+?)\*\*"),
    re.compile(r"__(.+?)__"),
    re.compile(r"~~(.+?)~~"),
    re.compile(r"`([^`]*)`"),
    re.compile(r"(?<!\w)\*(.+?)\*(?!\w)"),
    re.compile(r"(?<!\w)_(.+?)_(?!\w)"),
)


class JobTitleError(StageError):
    pass


def strip_markdown(text: str) -> str:
    """Reduce a model reply to one plain-text line."""
    line = next((ln for ln in (text or "").splitlines() if ln.strip()), "")
    line = re.sub(r"^\s*#+\s*", "", line)
    for pattern in _MARKDOWN_PATTERNS:
        line = pattern.sub(r"\1", line)
    line = re.sub(r"[*~`]", "", line)
    return re.sub(r"\s+", " ", line).strip().strip('"').strip()


def parse_job_title(raw: str) -> str:
    title = strip_markdown(raw)
    if not title:
        raise OutputParseError("Job title is empty after markdown cleanup")
    return title


def _retry_prompt(draft: str, critique: str) -> str:
    return f"Refine the job title '{draft}' based on this critique:\n{critique}"


async def generate_job_title(
    profile: Profile,
    refined_job_description: str,
    config: AgentConfig,
    on_progress: Optional[ProgressFn] = None,
    *,
    llm: Optional[AsyncLLMClient] = None,
    policy: Optional[LoopPolicy] = None,
    logger: Optional[Logger] = None,
) -> str:
    jd = (refined_job_description or "").strip()
    if not jd:
        raise JobTitleError("refined_job_description must be a non-empty string")

    rt = StageRuntime.resolve(config, on_progress, llm=llm, policy=policy, logger=logger)
    overview = format_profile_overview(profile)
    with rt.span("job_title"):
        loop = rt.loop(
            "job_title",
            analyst=rt.agent(AgentRole.ANALYST, ANALYST_PROMPT),
            analyst_prompt=f"Job Description:\n{jd}\n\nCandidate:\n{overview}",
            producer=rt.agent(AgentRole.REFINER, WRITER_PROMPT, temperature=0.4),
            first_prompt=lambda analysis: f"Analysis:\n{analysis}\n\nJob Description:\n{jd}\n\nWrite the job title.",
            reviewer=rt.agent(AgentRole.REVIEWER, REVIEWER_PROMPT, temperature=0.0),
            review_prompt=lambda draft: f"Job Description:\n{jd}\n\nGenerated title:\n{draft}",
            retry_prompt=_retry_prompt,
            parse=parse_job_title,
            producer_label="Writing job title...",
            reviewer_label="Reviewing job title...",
        )
        title = (await loop.run()).value
    rt.report("Job title generated!", done=True)
    return title
