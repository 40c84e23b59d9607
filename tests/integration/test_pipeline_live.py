"""Live run against the LLM configured in .env.

Enable by setting `PYTEST_LLM_LIVE=1` in your environment or `.env`; the test
then needs LLM_MODEL (and the provider's API key unless LLM_BASE_URL points
at a local OpenAI-compatible server).
"""

from __future__ import annotations

import pytest

from core import config
from core.critique_loop import LoopPolicy
from core.models import AgentConfig, ProgressEvent
from core.pipeline import run_pipeline
from tests.fakes import JD_TEXT

pytestmark = pytest.mark.integration


@pytest.fixture
def live_config(monkeypatch: pytest.MonkeyPatch) -> AgentConfig:
    # Use the repo .env even though the suite points DOTENV_PATH elsewhere.
    monkeypatch.setenv("DOTENV_PATH", ".env")
    config._config_adapter.cache_clear()
    if not config.get_config_value("PYTEST_LLM_LIVE"):
        pytest.skip("Live LLM test disabled; set PYTEST_LLM_LIVE=1 to enable")
    return AgentConfig.from_env()


@pytest.mark.asyncio
async def test_pipeline_live(live_config: AgentConfig, profile) -> None:
    events: list[ProgressEvent] = []
    result = await run_pipeline(
        profile,
        JD_TEXT,
        live_config,
        events.append,
        policy=LoopPolicy(max_iterations=1),
    )
    print(f"Live job title: {result.job_title}")

    assert result.job_title.strip()
    assert result.cover_letter.strip()
    assert len(result.tailored_work_history) == len(profile.work_experience)
    assert [e for e in events if e.done][0].partial_result == result.model_dump()
