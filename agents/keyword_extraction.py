"""ATS keyword extraction, streamed from a single KeywordExtractor agent.

Runs once per pipeline run and seeds the context store; experience tailoring
calls it directly when used standalone. A reply that cannot be parsed yields
an empty result instead of an error.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from pydantic import ValidationError

from agents.runtime import ProgressFn, StageError, StageRuntime
from core.agent import collect_stream
from core.critique_loop import LoopPolicy, OutputParseError
from core.json_utils import parse_json_object
from core.llm_client import AsyncLLMClient
from core.models import AgentConfig, AgentRole, KeywordExtractionResult
from core.obs import Logger

_log = logging.getLogger(__name__)

KEYWORD_EXTRACTOR_PROMPT = """
You are an ATS keyword strategist. Given a job description and the candidate's
achievements, identify the JD keywords that matter for applicant tracking
systems.

Output STRICT JSON only, with this shape:
{
  "missing": ["keywords the JD requires that the achievements never mention"],
  "critical": ["must-have keywords from the JD"],
  "niceToHave": ["secondary keywords from the JD"]
}
"""


class KeywordExtractionError(StageError):
    pass


def build_keyword_prompt(job_description: str, achievements: Iterable[str]) -> str:
    joined = "\n".join(a for a in achievements if a)
    return (
        f"Job Description:\n{job_description}\n\n"
        f"Overall Resume Achievements:\n{joined or '(none)'}\n\n"
        "Identify JD keywords missing from the achievements for ATS optimization."
    )


def _as_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def parse_keywords(raw: str) -> KeywordExtractionResult:
    data = parse_json_object(raw, OutputParseError)
    try:
        return KeywordExtractionResult(
            missing=_as_list(data.get("missing", data.get("missingKeywords"))),
            critical=_as_list(data.get("critical", data.get("criticalKeywords"))),
            nice_to_have=_as_list(
                data.get("niceToHave", data.get("nice_to_have", data.get("niceToHaveKeywords")))
            ),
        )
    except ValidationError as exc:
        raise OutputParseError(f"Invalid keyword payload: {exc}") from exc


async def extract_keywords(
    job_description: str,
    achievements: Iterable[str],
    config: AgentConfig,
    on_progress: Optional[ProgressFn] = None,
    *,
    llm: Optional[AsyncLLMClient] = None,
    policy: Optional[LoopPolicy] = None,
    logger: Optional[Logger] = None,
) -> KeywordExtractionResult:
    jd = (job_description or "").strip()
    if not jd:
        raise KeywordExtractionError("job_description must be a non-empty string")

    rt = StageRuntime.resolve(config, on_progress, llm=llm, policy=policy, logger=logger)
    agent = rt.agent(AgentRole.KEYWORD_EXTRACTOR, KEYWORD_EXTRACTOR_PROMPT, temperature=0.0)
    with rt.span("keyword_extraction"):
        rt.report("JD Strategy: extracting keywords...")
        raw = await collect_stream(
            agent.stream(build_keyword_prompt(jd, achievements)),
            rt.on_progress,
            silent_text=True,
        )
    try:
        result = parse_keywords(raw)
    except OutputParseError:
        _log.warning("extract_keywords: unparseable reply (%d chars), using empty result", len(raw))
        rt.logger.warn("stage.keyword_extraction.fallback", chars=len(raw))
        result = KeywordExtractionResult()
    rt.report(
        f"JD Strategy: {len(result.critical)} critical, {len(result.missing)} missing keywords.",
    )
    rt.report("Keywords extracted.", done=True)
    return result
