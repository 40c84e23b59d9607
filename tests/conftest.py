from pathlib import Path
import sys

import pytest

# Ensure project root is on sys.path for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from core.critique_loop import LoopPolicy  # noqa: E402
from core.models import (  # noqa: E402
    Achievement,
    AgentConfig,
    Profile,
    Skill,
    SkillGroup,
    WorkExperience,
)

_CONFIG_KEYS = (
    "LLM_PROVIDER",
    "LLM_MODEL",
    "LLM_BASE_URL",
    "LLM_API_KEY",
    "OPENAI_API_KEY",
    "GOOGLE_API_KEY",
    "ANTHROPIC_API_KEY",
    "CRITIQUE_MAX_ITERATIONS",
    "STAGE_TIMEOUT_SECONDS",
    "OBS_LOG_FILE",
    "OBS_LOG_LEVEL",
    "CORS_ORIGINS",
    "STAGE_ENDPOINTS",
    "LOG_DIR",
    "APP_ENV",
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    from core import config as cfg

    # Prevent tests from accidentally reading your real .env file.
    monkeypatch.setenv("DOTENV_PATH", "tests/.env.DO_NOT_USE")
    for key in _CONFIG_KEYS:
        monkeypatch.delenv(key, raising=False)
    cfg._config_adapter.cache_clear()  # type: ignore[attr-defined]
    yield
    cfg._config_adapter.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def agent_config() -> AgentConfig:
    return AgentConfig(model="test-model", endpoint="http://localhost:1234/v1")


@pytest.fixture
def policy() -> LoopPolicy:
    return LoopPolicy(max_iterations=2)


@pytest.fixture
def profile() -> Profile:
    return Profile(
        name="Ada Example",
        position="Software Engineer",
        summary="Engineer.",
        work_experience=[
            WorkExperience(
                organization="Acme",
                position="Senior Engineer",
                start_year="2019",
                end_year="2024",
                description="Built web apps.",
                key_achievements=[Achievement(text="Cut page load by 40%")],
                technologies=["Node.js", "React"],
            ),
            WorkExperience(
                organization="Globex",
                position="Engineer",
                start_year="2016",
                end_year="2019",
                description="Maintained APIs.",
                key_achievements=[Achievement(text="Led API migration")],
            ),
        ],
        skills=[
            SkillGroup(title="Backend", skills=[Skill(text="Node.js", highlight=True)]),
            SkillGroup(title="Frontend", skills=[Skill(text="React")]),
        ],
        website="https://ada.example",
    )
