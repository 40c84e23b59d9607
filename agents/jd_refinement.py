"""Job description refinement: Refiner drafts, Reviewer approves or critiques.

`analyze_job_description` is the single-agent variant without a review round.
"""

from __future__ import annotations

from typing import Optional

from agents.common_prompts import VERDICT_RULES
from agents.runtime import ProgressFn, StageError, StageRuntime
from core.agent import collect_stream
from core.critique_loop import LoopPolicy
from core.llm_client import AsyncLLMClient
from core.models import AgentConfig, AgentRole
from core.obs import Logger

SECTIONS = (
    "position-title",
    "core-responsibilities",
    "desired-qualifications",
    "required-skills",
)

REFINER_PROMPT = """
You are a Professional JD Refiner. Reformat a raw job description into a strict,
clean structure.

RULES:
- No complex markdown: no bold, no italics, no sub-headers. Use only `#` for
  section titles and `-` for list items.
- Produce exactly these sections, in this order:
  # position-title
  (the job title)

  # core-responsibilities
  (short list, at most 5 items, no repetition)

  # desired-qualifications
  (short list, at most 5 items, no repetition)

  # required-skills
  (technology and tool names only, e.g. Next.js, Linux, GCP, CI/CD; no sentences)

Return only the refined job description.
"""

REVIEWER_PROMPT = f"""
You are a JD Quality Critic. Review a refined job description against these criteria:
1. Only `#` and `-` markdown is used (reject bold and italics).
2. Exactly 4 sections: position-title, core-responsibilities, desired-qualifications, required-skills.
3. core-responsibilities and desired-qualifications have at most 5 items each.
4. required-skills lists technology names only.

{VERDICT_RULES}
"""

ANALYST_PROMPT = """
You are a professional recruiting assistant and expert resume tailor. Analyze the
provided job description and improve its clarity, structure and keywords without
losing its original meaning. Format it cleanly with clear sections for
Responsibilities, Requirements and Skills.

Only return the improved job description text, no preamble or explanation.
"""


class JobDescriptionRefinementError(StageError):
    pass


def _retry_prompt(draft: str, critique: str) -> str:
    return (
        "Refine the JD again based on these critiques.\n\n"
        f"Refined JD:\n{draft}\n\nCritiques from Reviewer:\n{critique}"
    )


async def refine_job_description(
    job_description: str,
    config: AgentConfig,
    on_progress: Optional[ProgressFn] = None,
    *,
    llm: Optional[AsyncLLMClient] = None,
    policy: Optional[LoopPolicy] = None,
    logger: Optional[Logger] = None,
) -> str:
    """Return the job description rewritten into the four fixed sections."""
    jd = (job_description or "").strip()
    if not jd:
        raise JobDescriptionRefinementError("job_description must be a non-empty string")

    rt = StageRuntime.resolve(config, on_progress, llm=llm, policy=policy, logger=logger)
    with rt.span("jd_refinement", jd_chars=len(jd)):
        rt.report("Starting multi-agent refinement...")
        loop = rt.loop(
            "jd_refinement",
            producer=rt.agent(AgentRole.REFINER, REFINER_PROMPT),
            reviewer=rt.agent(AgentRole.REVIEWER, REVIEWER_PROMPT, temperature=0.0),
            first_prompt=f"Original Job Description:\n\n{jd}",
            review_prompt=lambda draft: f"Review this Job Description:\n\n{draft}",
            retry_prompt=_retry_prompt,
            producer_label="Improving JD...",
            reviewer_label="Analyzing quality...",
        )
        refined = (await loop.run()).value
    rt.report("Job description refined.", done=True)
    return refined


async def analyze_job_description(
    job_description: str,
    config: AgentConfig,
    on_progress: Optional[ProgressFn] = None,
    *,
    llm: Optional[AsyncLLMClient] = None,
    logger: Optional[Logger] = None,
) -> str:
    """Single-agent rewrite with no review round.

    With ``on_progress`` the answer is streamed: every delta is forwarded,
    followed by one empty ``done`` notification. Without it the agent is
    invoked once.
    """
    jd = (job_description or "").strip()
    if not jd:
        raise JobDescriptionRefinementError("job_description must be a non-empty string")

    rt = StageRuntime.resolve(config, on_progress, llm=llm, logger=logger)
    agent = rt.agent(AgentRole.REFINER, ANALYST_PROMPT)
    with rt.span("jd_analysis", jd_chars=len(jd), streamed=on_progress is not None):
        if on_progress is None:
            return await agent.invoke(jd)
        improved = await collect_stream(agent.stream(jd), on_progress)
    rt.report("", done=True)
    return improved
