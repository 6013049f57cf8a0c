from __future__ import annotations

import json
import logging

from cyberguard.ai import AIAssistError, AIConfig, generate_text
from cyberguard.models import ProviderMetadata, ProviderStats
from cyberguard.report_parser import CHART_LABEL, TITLE_PREFIX, active_sections, bold_label
from cyberguard.scoring import risk_distribution

logger = logging.getLogger(__name__)

SECTION_GUIDANCE = {
    "threats": "List specific threats (e.g., malware, phishing, ransomware) based on the threat-intelligence data.",
    "reputation_notes": "Assess trustworthiness or historical data.",
    "context": "Describe the input's purpose and risks.",
    "safety_tips": "Provide 4+ actionable tips.",
    "dark_web_notes": "Assess likelihood of dark web presence (e.g., based on threat names, reputation).",
}

DARK_WEB_GUIDANCE = {
    "reputation_notes": "Assess trustworthiness or known dark web associations.",
    "context": "Describe potential dark web usage (e.g., illicit markets, data leaks).",
}

SAFETY_TIPS = (
    "Only visit sites served over HTTPS and check the domain carefully.",
    "Keep antivirus and browser protections enabled and up to date.",
    "Turn on two-factor authentication for important accounts.",
    "Verify the source before downloading files or entering credentials.",
)

DARK_WEB_SAFETY_TIPS = (
    "Avoid sharing sensitive personal or financial data.",
    "Use a reputable VPN on untrusted networks.",
    "Monitor your accounts and credit reports for unusual activity.",
    "Verify sources before trusting links found on forums or paste sites.",
)


def _describe_metadata(metadata: ProviderMetadata) -> tuple[str, str, str]:
    threat_names = ", ".join(metadata.threat_names) or "None"
    categories = ", ".join(dict.fromkeys(metadata.categories.values())) or "Unknown"
    reputation = str(metadata.reputation) if metadata.reputation is not None else "N/A"
    return threat_names, categories, reputation


def build_prompt(
    variant: str,
    input_label: str,
    stats: ProviderStats,
    metadata: ProviderMetadata,
    is_dark_web_query: bool = False,
) -> str:
    threat_names, categories, reputation = _describe_metadata(metadata)
    purpose = "potential dark web activity" if is_dark_web_query else "cybersecurity purposes"
    lines = [
        f"Analyze {variant}: {input_label} for {purpose} with detailed insights.",
        f"VirusTotal stats: {json.dumps(stats.model_dump())}.",
        f"Threat names: {threat_names}.",
        f"Categories: {categories}.",
        f"Reputation: {reputation}.",
        "",
        f"Start with the line **{TITLE_PREFIX} {input_label}** and provide a comprehensive cybersecurity report with:",
    ]
    for section in active_sections(is_dark_web_query):
        guidance = SECTION_GUIDANCE[section.key]
        if is_dark_web_query:
            guidance = DARK_WEB_GUIDANCE.get(section.key, guidance)
        lines.append(f"- {bold_label(section.label)} {guidance}")
    lines.append(
        f"- {bold_label(CHART_LABEL)} a fenced ```json block containing "
        '{"Safe": X, "Malicious": Y, "Suspicious": Z} where X + Y + Z = 100.'
    )
    return "\n".join(lines)


def fallback_report(
    input_label: str,
    stats: ProviderStats,
    metadata: ProviderMetadata,
    is_dark_web_query: bool = False,
) -> str:
    flagged = stats.malicious > 0
    if is_dark_web_query:
        threats = "Potential dark web threats detected." if flagged else "No specific threats detected."
        context = (
            "Possibly linked to dark web activity because engines flagged it as malicious."
            if flagged
            else "No malicious flags point to dark web usage."
        )
        tips = DARK_WEB_SAFETY_TIPS
    else:
        threats = "Detected threats." if flagged else "No specific threats."
        context = "General cybersecurity context."
        tips = SAFETY_TIPS

    bodies: dict[str, list[str]] = {
        "threats": [threats],
        "reputation_notes": [f"Score: {metadata.reputation}" if metadata.reputation is not None else "No data."],
        "context": [context],
        "safety_tips": list(tips),
        "dark_web_notes": ["Possible dark web activity." if flagged else "No clear evidence."],
    }
    if flagged and metadata.threat_names:
        bodies["threats"].append(f"Known threat names: {', '.join(metadata.threat_names)}")
    bodies["threats"].append(
        f"Engines: {stats.malicious} malicious, {stats.suspicious} suspicious, "
        f"{stats.harmless} harmless, {stats.undetected} undetected."
    )

    lines = [f"**{TITLE_PREFIX} {input_label}**"]
    for section in active_sections(is_dark_web_query):
        lines.append(f"- {bold_label(section.label)}")
        lines.extend(f"  - {item}" for item in bodies[section.key])

    chart = risk_distribution(stats)
    lines.append(f"- {bold_label(CHART_LABEL)}")
    lines.append("```json")
    lines.append(
        json.dumps(
            {"Safe": chart.safe_pct, "Malicious": chart.malicious_pct, "Suspicious": chart.suspicious_pct}
        )
    )
    lines.append("```")
    return "\n".join(lines) + "\n"


def generate_report(
    variant: str,
    input_label: str,
    stats: ProviderStats,
    metadata: ProviderMetadata,
    is_dark_web_query: bool = False,
    config: AIConfig | None = None,
) -> str:
    """Ask the generative provider for a narrative report; never raises."""
    prompt = build_prompt(variant, input_label, stats, metadata, is_dark_web_query)
    try:
        generation = generate_text(config or AIConfig(), prompt)
    except AIAssistError as exc:
        logger.warning("Report generation failed for %s, using fallback report: %s", variant, exc)
        return fallback_report(input_label, stats, metadata, is_dark_web_query)
    except Exception:
        logger.exception("Unexpected report generation error for %s, using fallback report", variant)
        return fallback_report(input_label, stats, metadata, is_dark_web_query)
    logger.debug("Report generated by %s/%s", generation.provider, generation.model)
    return generation.text
