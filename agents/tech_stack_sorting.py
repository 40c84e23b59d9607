"""Order one work entry's technologies by relevance to the job description."""

from __future__ import annotations

import json
from typing import Optional, Sequence

from agents.common_prompts import VERDICT_RULES
from agents.runtime import ProgressFn, StageError, StageRuntime
from core.critique_loop import LoopPolicy, OutputParseError
from core.json_utils import parse_json_array
from core.llm_client import AsyncLLMClient
from core.models import AgentConfig, AgentRole
from core.obs import Logger

ANALYST_PROMPT = """
You are a Tech Stack Optimization analyst (the Brain). Rank the given
technologies by how strongly the job description asks for them. Never drop an
item. Output a short markdown ranking with one-line reasons. No JSON yet.
"""

PRODUCER_PROMPT = """
You are a Data Architect (the Scribe). Convert the ranking into a STRICT JSON
array of strings, most relevant first. Include every original technology
exactly once with its original spelling. Output only the JSON array.
"""

VALIDATOR_PROMPT = f"""
You are a Data Validator (the Editor). Compare the generated JSON array with
the original list:
1. Valid JSON array of strings?
2. Every original item present, none added, none duplicated?

{VERDICT_RULES}
"""


class TechStackSortError(StageError):
    pass


def make_parser(original: Sequence[str]):
    expected = {t.casefold() for t in original}

    def parse(raw: str) -> list[str]:
        items = [str(v).strip() for v in parse_json_array(raw, OutputParseError) if str(v).strip()]
        lost = expected - {t.casefold() for t in items}
        if lost:
            raise OutputParseError("Missing original technologies: " + ", ".join(sorted(lost)))
        seen: set[str] = set()
        ordered = []
        for item in items:
            key = item.casefold()
            if key in seen:
                continue
            seen.add(key)
            ordered.append(item)
        return ordered

    return parse


async def sort_tech_stack(
    technologies: Sequence[str],
    job_description: str,
    config: AgentConfig,
    on_progress: Optional[ProgressFn] = None,
    *,
    llm: Optional[AsyncLLMClient] = None,
    policy: Optional[LoopPolicy] = None,
    logger: Optional[Logger] = None,
) -> list[str]:
    """Return `technologies` reordered; an empty input returns [] without any call."""
    items = [t for t in technologies if t and t.strip()]
    if not items:
        return []
    jd = (job_description or "").strip()
    if not jd:
        raise TechStackSortError("job_description must be a non-empty string")

    rt = StageRuntime.resolve(config, on_progress, llm=llm, policy=policy, logger=logger)
    original = json.dumps(items, ensure_ascii=False)
    with rt.span("tech_stack_sorting", items=len(items)):
        loop = rt.loop(
            "tech_stack_sorting",
            analyst=rt.agent(AgentRole.ANALYST, ANALYST_PROMPT),
            analyst_prompt=f"JOB DESCRIPTION:\n{jd}\n\nTECH STACK:\n{original}",
            producer=rt.agent(AgentRole.PRODUCER, PRODUCER_PROMPT, temperature=0.0),
            first_prompt=lambda analysis: f"Original list:\n{original}\n\nRanking:\n{analysis}",
            reviewer=rt.agent(AgentRole.VALIDATOR, VALIDATOR_PROMPT, temperature=0.0),
            review_prompt=lambda draft: f"Original list:\n{original}\n\nGenerated JSON:\n{draft}",
            retry_prompt=lambda draft, critique: (
                f"Validation failed. Fix the JSON array based on this critique:\n{critique}\n\n"
                f"Previous output:\n{draft}\n\nOriginal list:\n{original}"
            ),
            parse=make_parser(items),
            producer_label="Ordering tech stack...",
            reviewer_label="Validating tech stack...",
        )
        ordered = (await loop.run()).value
    rt.report("Tech stack sorted.", done=True)
    return ordered
