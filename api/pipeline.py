"""FastAPI router for full pipeline runs.

Endpoints:
  POST /pipeline/run      -> PipelineResult
  POST /pipeline/stream   -> NDJSON, one ProgressEvent per line; the last line
                             is the terminal event or {"error": ..., "type": ...}
  GET  /pipeline/providers -> OpenAI-compatible endpoint presets
"""

from __future__ import annotations

import json
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from api.deps import error_payload, get_llm, get_logger, guarded, resolve_config
from core.llm_client import AsyncLLMClient
from core.models import PROVIDER_PRESETS, AgentConfig, PipelineResult, Profile, ProviderPreset
from core.obs import Logger
from core.pipeline import iter_pipeline, run_pipeline

router = APIRouter(prefix="/pipeline")


class PipelineRunBody(BaseModel):
    profile: Profile
    job_description: str = Field(..., min_length=1)
    agent_config: Optional[AgentConfig] = None


@router.post("/run", response_model=PipelineResult)
async def run(
    body: PipelineRunBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> PipelineResult:
    config = resolve_config(body.agent_config)
    return await guarded(
        run_pipeline(body.profile, body.job_description, config, llm=llm, logger=logger),
        logger,
        "/pipeline/run",
    )


@router.post("/stream")
async def stream(
    body: PipelineRunBody,
    llm: Optional[AsyncLLMClient] = Depends(get_llm),
    logger: Logger = Depends(get_logger),
) -> StreamingResponse:
    config = resolve_config(body.agent_config)

    async def lines() -> AsyncIterator[str]:
        async with iter_pipeline(body.profile, body.job_description, config, llm=llm, logger=logger) as events:
            try:
                async for event in events:
                    yield event.model_dump_json() + "\n"
            except Exception as exc:
                logger.error("http.stream_failed", **error_payload(exc))
                yield json.dumps(error_payload(exc)) + "\n"

    return StreamingResponse(lines(), media_type="application/x-ndjson")


@router.get("/providers", response_model=list[ProviderPreset])
async def providers() -> list[ProviderPreset]:
    return PROVIDER_PRESETS
