"""Professional summary: StrategyAnalyst briefs once, Writer drafts, Auditor reviews.

Before the Auditor sees a draft, a deterministic skill guard rejects any
summary that names a known technology the profile does not list.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from agents.common_prompts import VERDICT_RULES, format_profile_overview, years_of_experience
from agents.runtime import ProgressFn, StageError, StageRuntime
from core.critique_loop import Critique, LoopPolicy, Verdict, parse_verdict
from core.llm_client import AsyncLLMClient
from core.models import AgentConfig, AgentRole, Profile
from core.obs import Logger

STRATEGY_ANALYST_PROMPT = """
You are a Resume Strategy Analyst. Compare the candidate profile with the job
description and write a short brief for a summary writer: the 3 strongest
selling points, the JD themes to echo, and the tone to use. Only reference
skills and experience that exist in the profile.
"""

WRITER_PROMPT = """
You are a Resume Writer. Write a professional summary of 3-4 sentences
(max 80 words) in the first person implied style (no "I"). Follow the brief,
mirror the job description's language, and only mention technologies listed
in the candidate's skills. Return plain text only.
"""

AUDITOR_PROMPT = f"""
You are a Resume Quality Auditor. Check the summary for:
1. 3-4 sentences, at most 80 words, no first-person pronouns.
2. Claims supported by the candidate profile (no invented employers, titles or numbers).
3. Clear alignment with the job description.

{VERDICT_RULES}
"""

# Lowercase names the guard recognises; anything else is left to the Auditor.
KNOWN_TECHNOLOGIES: frozenset[str] = frozenset(
    {
        "python", "java", "javascript", "typescript", "golang", "rust", "ruby", "php",
        "c++", "c#", "kotlin", "swift", "scala", "elixir", "haskell",
        "react", "react native", "angular", "vue", "svelte", "next.js", "nuxt", "node.js",
        "express", "django", "flask", "fastapi", "spring", "spring boot", "rails", "laravel",
        ".net", "graphql", "redux", "tailwind",
        "aws", "gcp", "azure", "docker", "kubernetes", "terraform", "ansible", "jenkins",
        "postgresql", "mysql", "mongodb", "redis", "elasticsearch", "kafka", "rabbitmq",
        "snowflake", "spark", "hadoop", "airflow", "dbt",
        "pytorch", "tensorflow", "scikit-learn", "pandas", "numpy", "langchain",
    }
)


class SummaryError(StageError):
    pass


def _mentions(text: str, term: str) -> bool:
    pattern = r"(?<![\w.+#-])" + re.escape(term) + r"(?![\w+#-]|\.\w)"
    return re.search(pattern, text, flags=re.IGNORECASE) is not None


def find_skill_violations(summary: str, allowed_skills: Iterable[str]) -> list[str]:
    """Known technologies named in the summary but absent from allowed_skills."""
    allowed = [s for s in allowed_skills if s and s.strip()]
    violations = []
    for tech in sorted(KNOWN_TECHNOLOGIES):
        if not _mentions(summary, tech):
            continue
        if any(_mentions(skill, tech) for skill in allowed):
            continue
        violations.append(tech)
    return violations


async def generate_summary(
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
        raise SummaryError("refined_job_description must be a non-empty string")

    rt = StageRuntime.resolve(config, on_progress, llm=llm, policy=policy, logger=logger)
    overview = format_profile_overview(profile)
    allowed = profile.skill_names()
    years = years_of_experience(profile)
    auditor = rt.agent(AgentRole.AUDITOR, AUDITOR_PROMPT, temperature=0.0)

    async def review(draft: str) -> Verdict:
        # An empty skills list gives the guard nothing to compare against.
        if allowed:
            violations = find_skill_violations(draft, allowed)
            if violations:
                rt.logger.info("stage.summary.skill_guard", violations=violations)
                return Critique(
                    "The summary mentions technologies that are not in the candidate's skills: "
                    + ", ".join(violations)
                    + ". Remove them."
                )
        reply = await auditor.invoke(f"Job Description:\n{jd}\n\nCandidate:\n{overview}\n\nSummary:\n{draft}")
        return parse_verdict(reply)

    with rt.span("summary", skills=len(allowed)):
        loop = rt.loop(
            "summary",
            analyst=rt.agent(AgentRole.STRATEGY_ANALYST, STRATEGY_ANALYST_PROMPT),
            analyst_prompt=f"Job Description:\n{jd}\n\nCandidate:\n{overview}",
            producer=rt.agent(AgentRole.WRITER, WRITER_PROMPT, temperature=0.5),
            first_prompt=lambda brief: (
                f"Brief:\n{brief}\n\nJob Description:\n{jd}\n\n"
                f"Allowed skills: {', '.join(allowed) or '(none listed)'}\n"
                + (f"Years of experience: {years}\n" if years is not None else "")
                + "\nWrite the summary."
            ),
            reviewer=review,
            producer_label="Writing summary...",
            reviewer_label="Auditing summary...",
        )
        summary = (await loop.run()).value
    rt.report("Expert summary generated and verified.", done=True)
    return summary
