"""Cover letter: Writer drafts from the tailored profile, Reviewer critiques."""

from __future__ import annotations

from typing import Optional

from agents.common_prompts import VERDICT_RULES, format_profile_overview
from agents.runtime import ProgressFn, StageError, StageRuntime
from core.critique_loop import LoopPolicy
from core.llm_client import AsyncLLMClient
from core.models import AgentConfig, AgentRole, Profile
from core.obs import Logger

WRITER_PROMPT = """
You are a Professional Cover Letter Writer for technical roles. Write a
concise cover letter (3-4 short paragraphs, under 350 words):
1. Opening: who the candidate is and why they fit the role.
2. Alignment: how their experience and skills match the job description.
3. Impact: 2-3 concrete achievements from the profile relevant to the job.
4. Closing: enthusiasm and a call to action.
Do not invent companies, roles, dates, certifications or tools that are not in
the profile. Return only the letter body as plain text.
"""

REVIEWER_PROMPT = f"""
You are a Master Resume Reviewer assessing a cover letter. Check that it:
1. Is specific to the job description, not generic.
2. Uses only facts present in the candidate profile.
3. Is under 350 words with a clear opening, evidence and closing.
4. Has a professional, confident tone.

{VERDICT_RULES}
"""


class CoverLetterError(StageError):
    pass


def _retry_prompt(draft: str, critique: str) -> str:
    return (
        f"Refine this cover letter based on the reviewer's critique.\n\n"
        f"Previous draft:\n{draft}\n\nCritique:\n{critique}"
    )


async def generate_cover_letter(
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
        raise CoverLetterError("refined_job_description must be a non-empty string")

    rt = StageRuntime.resolve(config, on_progress, llm=llm, policy=policy, logger=logger)
    overview = format_profile_overview(profile)
    with rt.span("cover_letter"):
        loop = rt.loop(
            "cover_letter",
            producer=rt.agent(AgentRole.REFINER, WRITER_PROMPT, temperature=0.6),
            reviewer=rt.agent(AgentRole.REVIEWER, REVIEWER_PROMPT, temperature=0.0),
            first_prompt=f"Job Description:\n{jd}\n\nCandidate profile:\n{overview}\n\nWrite the cover letter.",
            review_prompt=lambda draft: f"Job Description:\n{jd}\n\nCover letter:\n{draft}",
            retry_prompt=_retry_prompt,
            producer_label="Drafting cover letter...",
            reviewer_label="Reviewing cover letter...",
            retry_label="Refining cover letter...",
        )
        rt.report("Writing cover letter...")
        letter = (await loop.run()).value
    rt.report("Cover letter ready.", done=True)
    return letter
