"""Skills extraction from the raw job description.

The Extractor pulls candidate skills once; the Verifier rewrites them into a
clean comma-separated list, which a deterministic check validates.
"""

from __future__ import annotations

from typing import Optional

from agents.runtime import ProgressFn, StageError, StageRuntime
from core.critique_loop import Approved, Critique, LoopPolicy, OutputParseError, Verdict
from core.llm_client import AsyncLLMClient
from core.models import AgentConfig, AgentRole
from core.obs import Logger

EXTRACTOR_PROMPT = """
You are a Skills Extractor. Read the job description and list every concrete
technical skill, tool, framework, platform and methodology it asks for.
Write one item per line. Do not invent skills that are not in the text.
"""

VERIFIER_PROMPT = """
You are a Skills Verifier. You receive a job description and a draft list of
extracted skills. Remove anything not supported by the job description, merge
duplicates, use the canonical spelling of each technology (e.g. PostgreSQL,
Kubernetes) and return the final list as ONE line of comma-separated values.
No preamble, no numbering, no trailing period.
"""


class SkillsExtractionError(StageError):
    pass


def split_skills(text: str) -> list[str]:
    return [part.strip() for part in (text or "").replace("\n", ",").split(",") if part.strip()]


def parse_skill_list(raw: str) -> str:
    items = split_skills(raw)
    if not items:
        raise OutputParseError("No skills in verifier output")
    return ", ".join(items)


def validate_skill_list(draft: str) -> Verdict:
    if not split_skills(draft):
        return Critique("The list is empty; return the skills as comma-separated values.")
    if "\n" in draft.strip():
        return Critique("Return the skills on a single line, comma-separated.")
    return Approved()


async def extract_skills_from_jd(
    job_description: str,
    config: AgentConfig,
    on_progress: Optional[ProgressFn] = None,
    *,
    llm: Optional[AsyncLLMClient] = None,
    policy: Optional[LoopPolicy] = None,
    logger: Optional[Logger] = None,
) -> str:
    """Return a comma-separated list of the skills the job description asks for."""
    jd = (job_description or "").strip()
    if not jd:
        raise SkillsExtractionError("job_description must be a non-empty string")

    rt = StageRuntime.resolve(config, on_progress, llm=llm, policy=policy, logger=logger)
    with rt.span("skills_extraction", jd_chars=len(jd)):
        rt.report("Extracting key skills from JD...")
        loop = rt.loop(
            "skills_extraction",
            analyst=rt.agent(AgentRole.EXTRACTOR, EXTRACTOR_PROMPT, temperature=0.0),
            analyst_prompt=f"Job Description:\n\n{jd}",
            producer=rt.agent(AgentRole.VERIFIER, VERIFIER_PROMPT, temperature=0.0),
            first_prompt=lambda extracted: (
                f"Job Description:\n\n{jd}\n\nExtracted skills:\n{extracted}\n\n"
                "Verifying skill accuracy: return the final comma-separated list."
            ),
            reviewer=validate_skill_list,
            parse=parse_skill_list,
            producer_label="Verifying skill accuracy...",
            reviewer_label="Checking list format...",
        )
        skills = (await loop.run()).value
    rt.logger.info("stage.skills_extraction.result", count=len(split_skills(skills)))
    rt.report("Skills extracted.", done=True)
    return skills
