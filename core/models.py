from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ==== Agent configuration ====

class AgentRole(str, Enum):
    """Capability an agent is bound to for the lifetime of one stage run."""

    REFINER = "refiner"
    REVIEWER = "reviewer"
    ANALYST = "analyst"
    PRODUCER = "producer"
    VALIDATOR = "validator"
    EXTRACTOR = "extractor"
    VERIFIER = "verifier"
    STRATEGY_ANALYST = "strategy_analyst"
    WRITER = "writer"
    AUDITOR = "auditor"
    KEYWORD_EXTRACTOR = "keyword_extractor"


class ProviderKind(str, Enum):
    OPENAI = "openai"  # any OpenAI-compatible REST endpoint
    GEMINI = "gemini"
    CLAUDE = "claude"


# OpenAI-compatible servers (LM Studio, Ollama, ...) still require a non-empty key.
PLACEHOLDER_API_KEY = "not-needed"


class AgentConfig(BaseModel):
    """Where and how to reach the generation backend."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(..., min_length=1, description="Model identifier, e.g. 'gpt-4o-mini'.")
    provider: ProviderKind = ProviderKind.OPENAI
    endpoint: Optional[str] = Field(
        None,
        description="Base URL; None uses the provider default.",
    )
    api_key: Optional[str] = None

    def resolved_api_key(self) -> str:
        return self.api_key or PLACEHOLDER_API_KEY

    @classmethod
    def from_env(
        cls,
        *,
        model: Optional[str] = None,
        provider: Optional[ProviderKind] = None,
        endpoint: Optional[str] = None,
    ) -> "AgentConfig":
        """Build a config from LLM_* settings (env → .env).

        Explicit arguments win over configuration, so ``model`` stands in for
        an unset LLM_MODEL.
        """
        from core.config import get_config_value, get_default_model

        if provider is None:
            provider = ProviderKind((get_config_value("LLM_PROVIDER", "openai") or "openai").lower())
        provider_key = {
            ProviderKind.OPENAI: "OPENAI_API_KEY",
            ProviderKind.GEMINI: "GOOGLE_API_KEY",
            ProviderKind.CLAUDE: "ANTHROPIC_API_KEY",
        }[provider]
        return cls(
            model=model or get_default_model(),
            provider=provider,
            endpoint=endpoint or get_config_value("LLM_BASE_URL") or None,
            api_key=get_config_value("LLM_API_KEY") or get_config_value(provider_key),
        )


class ProviderPreset(BaseModel):
    name: str
    base_url: str
    description: str
    supports_models: bool = True


PROVIDER_PRESETS: list[ProviderPreset] = [
    ProviderPreset(
        name="OpenAI",
        base_url="https://api.openai.com/v1",
        description="Official OpenAI API",
    ),
    ProviderPreset(
        name="OpenRouter",
        base_url="https://openrouter.ai/api/v1",
        description="Access to many hosted models through one OpenAI-compatible API",
    ),
    ProviderPreset(
        name="Groq",
        base_url="https://api.groq.com/openai/v1",
        description="Fast inference for open models",
    ),
    ProviderPreset(
        name="Together AI",
        base_url="https://api.together.xyz/v1",
        description="Open source models",
    ),
    ProviderPreset(
        name="Local (LM Studio)",
        base_url="http://localhost:1234/v1",
        description="Local OpenAI-compatible server (LM Studio, Ollama, etc.)",
    ),
]


def get_provider_by_url(base_url: str) -> ProviderPreset | None:
    for preset in PROVIDER_PRESETS:
        if preset.base_url.lower() == base_url.lower():
            return preset
    return None


# ==== Profile (opaque document, only the fields the pipeline touches) ====

# Profiles arrive in either key style (workExperience or work_experience);
# dumps keep the snake_case names.
_PROFILE_CONFIG = ConfigDict(
    extra="allow",
    populate_by_name=True,
    alias_generator=AliasGenerator(validation_alias=to_camel),
)

class Achievement(BaseModel):
    model_config = _PROFILE_CONFIG

    text: str


class WorkExperience(BaseModel):
    model_config = _PROFILE_CONFIG

    organization: str = ""
    position: str = ""
    start_year: Optional[str] = None
    end_year: Optional[str] = None
    description: str = ""
    key_achievements: list[Achievement] = Field(default_factory=list)
    technologies: Optional[list[str]] = None


class Skill(BaseModel):
    model_config = _PROFILE_CONFIG

    text: str
    highlight: Optional[bool] = None


class SkillGroup(BaseModel):
    model_config = _PROFILE_CONFIG

    title: str
    skills: list[Skill] = Field(default_factory=list)


class Profile(BaseModel):
    """Résumé document; unknown fields are carried through untouched."""

    model_config = _PROFILE_CONFIG

    name: str = ""
    position: str = ""
    summary: str = ""
    work_experience: list[WorkExperience] = Field(default_factory=list)
    skills: list[SkillGroup] = Field(default_factory=list)

    def skill_names(self) -> list[str]:
        return [s.text for group in self.skills for s in group.skills]


# ==== Stage outputs ====

class KeywordExtractionResult(BaseModel):
    missing: list[str] = Field(default_factory=list)
    critical: list[str] = Field(default_factory=list)
    nice_to_have: list[str] = Field(default_factory=list)


class SkillsSortResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    group_order: list[str] = Field(default_factory=list, alias="groupOrder")
    skill_order: dict[str, list[str]] = Field(default_factory=dict, alias="skillOrder")


class TailoredExperience(BaseModel):
    description: str
    achievements: list[str] = Field(default_factory=list)
    tech_stack: Optional[list[str]] = None


# ==== Pipeline I/O ====

class PipelineRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    profile: Profile
    job_description: str = Field(..., min_length=1)
    agent_config: AgentConfig


class PipelineResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    refined_job_description: str
    job_title: str
    summary: str
    tailored_work_history: list[WorkExperience]
    sorted_skill_groups: list[SkillGroup]
    cover_letter: str
    extracted_skills: str


class StageProgress(BaseModel):
    """One notification emitted by a stage while it runs."""

    content: str = ""
    done: bool = False


class ProgressEvent(BaseModel):
    step_index: int = Field(..., ge=0)
    total_steps: int = Field(..., ge=1)
    message: str
    done: bool = False
    partial_result: dict[str, Any] = Field(default_factory=dict)
