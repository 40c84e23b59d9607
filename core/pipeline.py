"""Phase scheduler for one tailoring run.

Phase 1  (concurrent): refine JD | extract skills from the raw JD
Phase 2a (concurrent): job title | ATS keyword extraction (seeds the context)
Phase 2b (concurrent): summary | skill sorting | work history tailored serially
Phase 3:               cover letter from the tailored profile

Steps: 1 = Phase 1, 2 = Phase 2a, 3 = summary, 4 = skill sorting,
5 + i = work entry i, total - 1 = cover letter, total = done.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Awaitable, Optional

from agents.cover_letter import generate_cover_letter
from agents.experience_tailoring import apply_tailoring, tailor_work_experience
from agents.jd_refinement import refine_job_description
from agents.job_title import generate_job_title
from agents.keyword_extraction import extract_keywords
from agents.skills_extraction import extract_skills_from_jd
from agents.skills_sorting import reassemble_skill_groups, sort_skill_groups
from agents.summary import generate_summary
from core.context import OptimizationContext
from core.critique_loop import LoopPolicy
from core.llm_client import AsyncLLMClient
from core.llm_factory import get_async_llm_client
from core.models import (
    AgentConfig,
    PipelineRequest,
    PipelineResult,
    Profile,
    SkillGroup,
    WorkExperience,
)
from core.obs import Logger, NullLogger, Span, bind_log_context
from core.progress import ProgressAggregator, ProgressCallback, ProgressChannel

PHASE_1_MESSAGE = "Analyzing job description & extracting skills (parallel)..."
PHASE_2A_MESSAGE = "Generating job title & analyzing JD keywords (parallel)..."
PHASE_2B_MESSAGE = "Generating summary, sorting skills & tailoring experiences (parallel)..."
COVER_LETTER_MESSAGE = "Generating cover letter..."
COMPLETE_MESSAGE = "AI optimization complete!"

FIXED_STEPS = 7


def total_steps_for(profile: Profile) -> int:
    return FIXED_STEPS + len(profile.work_experience)


async def _gather(*aws: Awaitable[Any]) -> list[Any]:
    """asyncio.gather that cancels the remaining siblings when one fails."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def run_pipeline(
    profile: Profile,
    job_description: str,
    config: AgentConfig,
    on_progress: Optional[ProgressCallback] = None,
    *,
    llm: Optional[AsyncLLMClient] = None,
    policy: Optional[LoopPolicy] = None,
    logger: Optional[Logger] = None,
) -> PipelineResult:
    """Run every stage for `profile` against `job_description`.

    Any stage error propagates and fails the run; no partial result is returned.
    """
    log = logger or NullLogger()
    shared = {
        "llm": llm or get_async_llm_client(config, logger=logger),
        "policy": policy or LoopPolicy.from_config(),
        "logger": log,
    }
    experiences = list(profile.work_experience)
    count = len(experiences)
    total = total_steps_for(profile)
    progress = ProgressAggregator(total, on_progress, logger=log)
    context = OptimizationContext()

    with bind_log_context(run_id=uuid.uuid4().hex), Span(
        log, "pipeline.run", {"model": config.model, "experiences": count, "total_steps": total}
    ):
        # ----- Phase 1 -----
        progress.announce(1, PHASE_1_MESSAGE)
        refined_jd, extracted_skills = await _gather(
            refine_job_description(job_description, config, progress.reporter(1), **shared),
            extract_skills_from_jd(job_description, config, **shared),
        )
        context.set("refined_job_description", refined_jd)
        context.set("extracted_skills", extracted_skills)

        # ----- Phase 2a -----
        progress.announce(
            2, PHASE_2A_MESSAGE, refined_job_description=refined_jd, extracted_skills=extracted_skills
        )
        achievements = [a.text for exp in experiences for a in exp.key_achievements]
        job_title, keywords = await _gather(
            generate_job_title(profile, refined_jd, config, progress.reporter(2), **shared),
            extract_keywords(refined_jd, achievements, config, progress.reporter(2), **shared),
        )
        context.set("job_title", job_title)
        context.set("extracted_keywords", keywords)
        context.freeze()

        # ----- Phase 2b -----
        progress.announce(3, PHASE_2B_MESSAGE, job_title=job_title)
        tailored: list[WorkExperience] = []

        async def tailor_all() -> list[WorkExperience]:
            for i, exp in enumerate(experiences):
                step = 5 + i
                progress.announce(
                    step,
                    f"Tailoring {exp.organization} experience ({i + 1}/{count})...",
                    tailored_work_history=[*tailored, *experiences[i:]],
                )
                result = await tailor_work_experience(
                    exp,
                    job_title,
                    refined_jd,
                    config,
                    progress.reporter(step),
                    context=context,
                    **shared,
                )
                tailored.append(apply_tailoring(exp, result))
            return tailored

        summary, sort_result, tailored_history = await _gather(
            generate_summary(profile, refined_jd, config, progress.reporter(3), **shared),
            sort_skill_groups(profile.skills, refined_jd, config, progress.reporter(4), **shared),
            tailor_all(),
        )
        sorted_groups: list[SkillGroup] = reassemble_skill_groups(sort_result, profile.skills)

        # ----- Phase 3 -----
        cover_step = total - 1
        progress.announce(
            cover_step,
            COVER_LETTER_MESSAGE,
            summary=summary,
            tailored_work_history=tailored_history,
            sorted_skill_groups=sorted_groups,
        )
        tailored_profile = profile.model_copy(
            update={
                "summary": summary,
                "work_experience": tailored_history,
                "skills": sorted_groups,
                "position": job_title,
            }
        )
        cover_letter = await generate_cover_letter(
            tailored_profile, refined_jd, config, progress.reporter(cover_step), **shared
        )

        result = PipelineResult(
            refined_job_description=refined_jd,
            job_title=job_title,
            summary=summary,
            tailored_work_history=tailored_history,
            sorted_skill_groups=sorted_groups,
            cover_letter=cover_letter,
            extracted_skills=extracted_skills,
        )
        progress.finish(COMPLETE_MESSAGE, result)
    return result


async def run_request(
    request: PipelineRequest,
    on_progress: Optional[ProgressCallback] = None,
    **kwargs: Any,
) -> PipelineResult:
    return await run_pipeline(
        request.profile, request.job_description, request.agent_config, on_progress, **kwargs
    )


def iter_pipeline(
    profile: Profile,
    job_description: str,
    config: AgentConfig,
    **kwargs: Any,
) -> ProgressChannel:
    """Progress events of a background run as an async iterator.

    Usage::

        async with iter_pipeline(profile, jd, config) as events:
            async for event in events:
                ...
        result = events.result
    """
    return ProgressChannel(
        lambda publish: run_pipeline(profile, job_description, config, publish, **kwargs)
    )
