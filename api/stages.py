"""Per-stage endpoints, so a client can rerun one stage on its own."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from agents import (
    analyze_job_description,
    extract_keywords,
    extract_skills_from_jd,
    generate_cover_letter,
    generate_job_title,
    generate_summary,
    reassemble_skill_groups,
    refine_job_description,
    sort_skill_groups,
    sort_tech_stack,
    tailor_work_experience,
)
from api.deps import get_llm, get_logger, guarded, resolve_config
from core.llm_client import AsyncLLMClient
from core.models import (
    AgentConfig,
    KeywordExtractionResult,
    Profile,
    SkillGroup,
    SkillsSortResult,
    TailoredExperience,
    WorkExperience,
)
from core.obs import Logger

router = APIRouter(prefix="/stages")


class JobDescriptionBody(BaseModel):
    job_description: str = Field(..., min_length=1)
    agent_config: Optional[AgentConfig] = None


class ProfileStageBody(JobDescriptionBody):
    profile: Profile


class KeywordsBody(JobDescriptionBody):
    achievements: list[str] = Field(default_factory=list)


class ExperienceBody(JobDescriptionBody):
    experience: WorkExperience
    job_title: str = ""


class TechStackBody(JobDescriptionBody):
    technologies: list[str] = Field(default_factory=list)


class SkillsSortBody(JobDescriptionBody):
    skill_groups: list[SkillGroup] = Field(default_factory=list)


class TextResponse(BaseModel):
    text: str


class SkillsSortResponse(BaseModel):
    result: SkillsSortResult
    skill_groups: list[SkillGroup]


@router.post("/refine-jd", response_model=TextResponse)
async def refine_jd(
    body: JobDescriptionBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> TextResponse:
    config = resolve_config(body.agent_config)
    text = await guarded(
        refine_job_description(body.job_description, config, llm=llm, logger=logger), logger, "/stages/refine-jd"
    )
    return TextResponse(text=text)


@router.post("/analyze-jd", response_model=TextResponse)
async def analyze_jd(
    body: JobDescriptionBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> TextResponse:
    config = resolve_config(body.agent_config)
    text = await guarded(
        analyze_job_description(body.job_description, config, llm=llm, logger=logger), logger, "/stages/analyze-jd"
    )
    return TextResponse(text=text)


@router.post("/extract-skills", response_model=TextResponse)
async def extract_skills(
    body: JobDescriptionBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> TextResponse:
    config = resolve_config(body.agent_config)
    text = await guarded(
        extract_skills_from_jd(body.job_description, config, llm=llm, logger=logger), logger, "/stages/extract-skills"
    )
    return TextResponse(text=text)


@router.post("/job-title", response_model=TextResponse)
async def job_title(
    body: ProfileStageBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> TextResponse:
    config = resolve_config(body.agent_config)
    text = await guarded(
        generate_job_title(body.profile, body.job_description, config, llm=llm, logger=logger),
        logger,
        "/stages/job-title",
    )
    return TextResponse(text=text)


@router.post("/summary", response_model=TextResponse)
async def summary(
    body: ProfileStageBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> TextResponse:
    config = resolve_config(body.agent_config)
    text = await guarded(
        generate_summary(body.profile, body.job_description, config, llm=llm, logger=logger),
        logger,
        "/stages/summary",
    )
    return TextResponse(text=text)


@router.post("/cover-letter", response_model=TextResponse)
async def cover_letter(
    body: ProfileStageBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> TextResponse:
    config = resolve_config(body.agent_config)
    text = await guarded(
        generate_cover_letter(body.profile, body.job_description, config, llm=llm, logger=logger),
        logger,
        "/stages/cover-letter",
    )
    return TextResponse(text=text)


@router.post("/keywords", response_model=KeywordExtractionResult)
async def keywords(
    body: KeywordsBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> KeywordExtractionResult:
    config = resolve_config(body.agent_config)
    return await guarded(
        extract_keywords(body.job_description, body.achievements, config, llm=llm, logger=logger),
        logger,
        "/stages/keywords",
    )


@router.post("/experience", response_model=TailoredExperience)
async def experience(
    body: ExperienceBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> TailoredExperience:
    config = resolve_config(body.agent_config)
    return await guarded(
        tailor_work_experience(
            body.experience,
            body.job_title or body.experience.position,
            body.job_description,
            config,
            llm=llm,
            logger=logger,
        ),
        logger,
        "/stages/experience",
    )


@router.post("/tech-stack", response_model=list[str])
async def tech_stack(
    body: TechStackBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> list[str]:
    config = resolve_config(body.agent_config)
    return await guarded(
        sort_tech_stack(body.technologies, body.job_description, config, llm=llm, logger=logger),
        logger,
        "/stages/tech-stack",
    )


@router.post("/skills-sort", response_model=SkillsSortResponse)
async def skills_sort(
    body: SkillsSortBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> SkillsSortResponse:
    config = resolve_config(body.agent_config)
    result = await guarded(
        sort_skill_groups(body.skill_groups, body.job_description, config, llm=llm, logger=logger),
        logger,
        "/stages/skills-sort",
    )
    return SkillsSortResponse(result=result, skill_groups=reassemble_skill_groups(result, body.skill_groups))
