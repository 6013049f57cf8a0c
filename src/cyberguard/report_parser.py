"""Turn free-form report text back into typed sections.

Generated and fallback reports share one grammar: an optional title line
``**Cybersecurity Report for X**`` followed by bold section labels
(``**Name:**`` or ``**Name**:``) and a fenced ```json risk distribution.
A section ends at the next grammar label or at any other line that holds
only a bold heading.
Parsing is total: missing or empty sections get a placeholder line and a
missing or malformed distribution is recomputed from engine stats.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

from pydantic import ValidationError

from cyberguard.models import ParsedReport, ProviderStats, RiskDistribution
from cyberguard.scoring import risk_distribution, round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Section:
    key: str
    label: str
    placeholder: str
    dark_web_only: bool = False


SECTIONS: tuple[Section, ...] = (
    Section("threats", "Threats & Vulnerabilities", "No specific threats detected"),
    Section("reputation_notes", "Reputation", "No data available"),
    Section("context", "Context", "No data available"),
    Section("safety_tips", "Safety Tips", "No specific tips available"),
    Section("dark_web_notes", "Dark Web Detection", "No dark web assessment available", dark_web_only=True),
)
CHART_LABEL = "JSON Pie Chart"
TITLE_PREFIX = "Cybersecurity Report for"
DEFAULT_TITLE = "Unknown Input"


def active_sections(is_dark_web_query: bool) -> list[Section]:
    return [s for s in SECTIONS if is_dark_web_query or not s.dark_web_only]


def bold_label(label: str) -> str:
    return f"**{label}:**"


def _label_pattern(label: str) -> str:
    return rf"\*\*[ \t]*(?:\d+\.[ \t]*)?{re.escape(label)}[ \t]*(?::[ \t]*\*\*|\*\*[ \t]*:)"


_ANY_LABEL = "|".join(_label_pattern(label) for label in [s.label for s in SECTIONS] + [CHART_LABEL])
_HEADING_LINE = r"^[ \t]*(?:[-*•][ \t]+)?\*\*[^*\n]+?(?::[ \t]*\*\*|\*\*[ \t]*:)[ \t]*$"
_BOUNDARY = rf"(?={_ANY_LABEL}|{_HEADING_LINE}|\*\*[ \t]*{re.escape(TITLE_PREFIX)}|```|\Z)"
_SECTION_RES = {
    s.key: re.compile(rf"{_label_pattern(s.label)}(.*?){_BOUNDARY}", re.IGNORECASE | re.DOTALL | re.MULTILINE)
    for s in SECTIONS
}
TITLE_RE = re.compile(rf"{re.escape(TITLE_PREFIX)}[ \t]*:?[ \t]*(.+?)[ \t]*(?:\*\*|$)", re.IGNORECASE | re.MULTILINE)
CHART_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.IGNORECASE | re.DOTALL)
BULLET_RE = re.compile(r"^(?:[-*•]|\d+[.)])(?:\s+|$)")


def _clean_line(line: str) -> str:
    stripped = line.strip()
    stripped = BULLET_RE.sub("", stripped)
    return stripped.strip()


def extract_section(text: str, section: Section) -> list[str]:
    match = _SECTION_RES[section.key].search(text)
    if not match:
        return [section.placeholder]
    lines = [_clean_line(line) for line in match.group(1).splitlines()]
    items = [line for line in lines if line]
    return items or [section.placeholder]


def extract_title(text: str, input_label: str | None = None) -> str:
    match = TITLE_RE.search(text)
    if match:
        title = match.group(1).strip().rstrip(":").strip()
        if title:
            return title
    return input_label or DEFAULT_TITLE


def _chart_from_json(raw: str) -> RiskDistribution | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    by_key = {str(k).strip().lower(): v for k, v in parsed.items()}
    values: dict[str, int] = {}
    for name in ("Safe", "Malicious", "Suspicious"):
        value = by_key.get(name.lower())
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        values[name] = round_half_up(value)
    try:
        return RiskDistribution.model_validate(values)
    except ValidationError:
        return None


def extract_risk_distribution(text: str, stats: ProviderStats) -> RiskDistribution:
    for match in CHART_RE.finditer(text):
        chart = _chart_from_json(match.group(1))
        if chart is not None:
            return chart
    logger.debug("No usable risk distribution block; deriving from engine stats")
    return risk_distribution(stats)


def parse_report(
    report_text: str,
    stats: ProviderStats,
    is_dark_web_query: bool = False,
    input_label: str | None = None,
) -> ParsedReport:
    text = report_text or ""
    sections = {s.key: extract_section(text, s) for s in active_sections(is_dark_web_query)}
    return ParsedReport(
        title=extract_title(text, input_label),
        threats=sections["threats"],
        reputation_notes=sections["reputation_notes"],
        context=sections["context"],
        safety_tips=sections["safety_tips"],
        dark_web_notes=sections.get("dark_web_notes"),
        risk_distribution=extract_risk_distribution(text, stats),
    )
