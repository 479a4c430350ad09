#!/usr/bin/env python
"""
Skill Synthesis Runner

Reads collected package facts (JSON) and generates a validated SKILL.md.

Usage:
    python -m skill_synthesis.run_synthesis --facts facts/requests.json -o SKILL.md
    python -m skill_synthesis.run_synthesis --facts facts/click.json --mode minimal --backend uv
    python -m skill_synthesis.run_synthesis --facts facts/click.json --dry-run
    python -m skill_synthesis.run_synthesis --facts facts/click.json -i skills/click/SKILL.md -o SKILL.md

Exit codes:
    0  SKILL.md written and verified
    2  SKILL.md written, but validation issues remained after all retries
    1  error (nothing written)

Or import and use programmatically:
    from skill_synthesis import generate_skill
    outcome = await generate_skill(facts)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from .config import Settings
from .errors import ConfigError, SkillSynthesisError
from .generator import build_generator
from .models import GenerationOutcome, PackageFacts, Severity

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_UNVERIFIED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate a SKILL.md from collected package facts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--facts", "-f", required=True, help="Path to the package facts JSON file")
    parser.add_argument("--output", "-o", default="SKILL.md", help="Output path (default: SKILL.md)")
    parser.add_argument("--input", "-i",
                        help="Existing SKILL.md to update for the new version instead of starting over")
    parser.add_argument("--provider", choices=["openai", "anthropic", "openai-compatible"],
                        help="LLM provider (default from LLM_PROVIDER)")
    parser.add_argument("--model", help="Model name (default from LLM_MODEL)")
    parser.add_argument("--base-url", help="Base URL for openai-compatible providers")
    parser.add_argument("--max-retries", type=int, help="Synthesis attempts (default: 3)")
    parser.add_argument("--mode", choices=["thorough", "minimal", "adaptive"],
                        help="Which patterns to test per attempt (default: thorough)")
    parser.add_argument("--backend", choices=["auto", "uv", "docker"],
                        help="Sandbox backend (default: auto)")
    parser.add_argument("--timeout", type=float, help="Per-script timeout in seconds (default: 60)")
    parser.add_argument("--no-validation", action="store_true", help="Skip functional validation")
    parser.add_argument("--no-review", action="store_true", help="Skip the review stage")
    parser.add_argument("--dry-run", action="store_true",
                        help="Use the mock model client (no API calls)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Environment/.env settings with CLI flags layered on top."""
    overrides = {
        "llm_provider": args.provider,
        "llm_model": args.model,
        "llm_base_url": args.base_url,
        "generation_max_retries": args.max_retries,
        "validation_mode": args.mode,
        "sandbox_backend": args.backend,
        "sandbox_timeout": args.timeout,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if args.no_validation:
        overrides["enable_validation"] = False
    if args.no_review:
        overrides["enable_review"] = False
    return Settings(**overrides)


def report(outcome: GenerationOutcome) -> None:
    status = "verified" if outcome.verified else "NOT verified"
    print(f"SKILL.md {status} after {outcome.attempts} attempt(s)")

    if outcome.test_result is not None:
        result = outcome.test_result
        print(f"  Patterns: {result.passed} passed, {result.failed} failed")
        for case in result.failed_cases:
            lines = (case.result.error_message() or "").strip().splitlines()
            print(f"    ✗ {case.pattern_name}: {lines[-1] if lines else 'failed'}")

    for issue in outcome.lint_issues:
        if issue.severity != Severity.INFO:
            print(f"  [{issue.severity.value}] {issue.category}: {issue.message}")

    if outcome.review is not None:
        for issue in outcome.review.issues:
            print(f"  [review/{issue.severity}] {issue.complaint}")

    for error in outcome.errors:
        print(f"  {error}")


def read_existing_skill(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read existing SKILL.md from {path}: {e}") from e


async def run(args: argparse.Namespace) -> int:
    settings = settings_from_args(args)
    facts = PackageFacts.from_json_file(args.facts)
    existing = read_existing_skill(args.input) if args.input else None

    generator = build_generator(settings, dry_run=args.dry_run, existing_skill=existing)
    outcome = await generator.generate(facts)

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(outcome.artifact, encoding="utf-8")
    print(f"Wrote {output}")
    report(outcome)

    return EXIT_OK if outcome.verified else EXIT_UNVERIFIED


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(run(args))
    except SkillSynthesisError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except Exception as e:
        logger.debug("Unexpected failure", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
