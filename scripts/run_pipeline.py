"""Run the full tailoring pipeline from a profile JSON file and a JD text file.

Usage:
  python -m scripts.run_pipeline --profile profile.json --jd jd.txt --out out/result.json
"""

from __future__ import annotations

from argparse import ArgumentParser, FileType
import json
from pathlib import Path

import anyio

from core.critique_loop import LoopPolicy
from core.models import AgentConfig, ProgressEvent, Profile, ProviderKind
from core.obs import JsonRepoLogger, JsonStdoutLogger
from core.pipeline import run_pipeline


def _print_progress(event: ProgressEvent) -> None:
    marker = "done" if event.done else f"{event.step_index}/{event.total_steps}"
    print(f"[{marker}] {event.message.strip()}")


def main(argv: list[str] | None = None) -> int:
    p = ArgumentParser(description="Tailor a profile to a job description.")
    p.add_argument("--profile", type=FileType("r"), required=True, help="Path to profile JSON")
    p.add_argument("--jd", type=FileType("r"), required=True, help="Path to JD text file")
    p.add_argument("--out", type=Path, help="Path to save the PipelineResult JSON")
    p.add_argument("--model", help="Override LLM_MODEL")
    p.add_argument("--provider", choices=[k.value for k in ProviderKind], help="Override LLM_PROVIDER")
    p.add_argument("--base-url", help="Override LLM_BASE_URL")
    p.add_argument("--max-iterations", type=int, help="Critique rounds after the first draft")
    p.add_argument("--stage-timeout", type=float, help="Seconds per critique loop")
    p.add_argument("--quiet", action="store_true", help="Do not print progress events")
    p.add_argument("--log-file", type=Path, help="Path to append structured logs (JSON lines)")
    args = p.parse_args(argv)

    profile = Profile.model_validate(json.load(args.profile))
    jd_text = args.jd.read()

    config = AgentConfig.from_env(
        model=args.model,
        provider=ProviderKind(args.provider) if args.provider else None,
        endpoint=args.base_url,
    )

    policy = LoopPolicy.from_config()
    if args.max_iterations is not None or args.stage_timeout is not None:
        policy = LoopPolicy(
            max_iterations=policy.max_iterations if args.max_iterations is None else args.max_iterations,
            stage_timeout=args.stage_timeout if args.stage_timeout is not None else policy.stage_timeout,
        )

    if args.log_file:
        logger = JsonStdoutLogger(service="scripts", env="dev", log_path=args.log_file)
    else:
        logger = JsonRepoLogger(service="scripts", env="dev", filename="run_pipeline.log")

    async def _run():
        return await run_pipeline(
            profile,
            jd_text,
            config,
            None if args.quiet else _print_progress,
            policy=policy,
            logger=logger,
        )

    result = anyio.run(_run)

    if args.out:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        print(f"Saved result to {args.out}")
    else:
        print(result.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
