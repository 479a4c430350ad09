"""Lightweight post-processing for synthesized SKILL.md files.

Only repairs what models reliably get wrong (frontmatter, References);
everything else is left to the linter and the retry loop.
"""

from __future__ import annotations

import logging
import re

import yaml

from .lint import REQUIRED_FIELDS, parse_frontmatter
from .models import PackageFacts

logger = logging.getLogger(__name__)

_FRONTMATTER_BLOCK_RE = re.compile(r"\A---[ \t]*\n.*?\n---[ \t]*(?:\n|\Z)", re.DOTALL)
_SKILL_TITLE_RE = re.compile(r"\A#\s*SKILL\.md\s*\n")


def build_frontmatter(
    package_name: str,
    version: str,
    ecosystem: str,
    license: str | None = None,
    generated_with: str | None = None,
    description: str | None = None,
) -> str:
    fields = {
        "name": package_name,
        "description": description or f"{ecosystem} library",
        "version": version,
        "ecosystem": ecosystem,
    }
    if license:
        fields["license"] = license
    if generated_with:
        fields["generated_with"] = generated_with

    body = yaml.safe_dump(fields, sort_keys=False, allow_unicode=True).strip()
    if not license:
        body += "\n# license: Unknown"
    return f"---\n{body}\n---\n\n"


def ensure_frontmatter(
    content: str,
    package_name: str,
    version: str,
    ecosystem: str = "python",
    license: str | None = None,
    generated_with: str | None = None,
) -> str:
    """Make sure the artifact starts with valid frontmatter carrying every required field.

    Frontmatter that is missing, unparseable or incomplete is replaced.
    A leading ``# SKILL.md`` title is dropped.
    """
    text = content.lstrip()

    try:
        existing = parse_frontmatter(text)
    except yaml.YAMLError:
        logger.warning("Frontmatter is not valid YAML - replacing it")
        existing = {}

    if existing is not None:
        body = _FRONTMATTER_BLOCK_RE.sub("", text, count=1).lstrip()
        if all(existing.get(key, "").strip() for key in REQUIRED_FIELDS):
            if generated_with and "generated_with" not in existing:
                fields = dict(existing, generated_with=generated_with)
                dumped = yaml.safe_dump(fields, sort_keys=False, allow_unicode=True).strip()
                return f"---\n{dumped}\n---\n\n{body}"
            return text
        logger.warning("Frontmatter has wrong format - replacing it")
        return build_frontmatter(
            package_name, version, ecosystem, license, generated_with,
            description=existing.get("description") or None,
        ) + body

    logger.warning("Frontmatter missing - adding it")
    body = _SKILL_TITLE_RE.sub("", text, count=1).lstrip()
    return build_frontmatter(package_name, version, ecosystem, license, generated_with) + body


def ensure_references(content: str, project_urls: list[tuple[str, str]]) -> str:
    """Append a References section listing ``project_urls`` when the artifact has none."""
    if not project_urls:
        return content
    if re.search(r"^## References\s*$", content, re.MULTILINE):
        return content

    logger.warning("References section missing - adding it")
    refs = "\n".join(f"- [{label}]({url})" for label, url in project_urls)
    return f"{content.rstrip()}\n\n## References\n\n{refs}\n"


def normalize_skill_md(
    content: str,
    facts: PackageFacts,
    generated_with: str | None = None,
) -> str:
    normalized = ensure_frontmatter(
        content,
        facts.package_name,
        facts.version,
        facts.ecosystem,
        facts.license,
        generated_with,
    )
    return ensure_references(normalized, facts.project_urls)
