from __future__ import annotations

from cyberguard.models import ProviderMetadata, ProviderStats
from cyberguard.report import fallback_report
from cyberguard.report_parser import parse_report
from cyberguard.scoring import risk_distribution

STATS = ProviderStats(malicious=10, suspicious=5, harmless=70, undetected=15)

GENERATED = """**Cybersecurity Report for https://login-paypa1.example**

**Threats & Vulnerabilities:**
* **Phishing:** The page imitates a payment provider login form.
* Possible credential harvesting via man-in-the-middle redirects.

**Reputation**:
- Reputation score of -20 indicates a history of abuse.

**Context:**
The domain was registered recently.

**Safety Tips:**
1. Do not enter credentials.
2. Report the page to your security team.
3) Enable two-factor authentication.
4. Check the address bar carefully.

```json
{"Safe": 70.4, "Malicious": 20, "Suspicious": 9.6}
```
"""


def test_generated_report_sections() -> None:
    parsed = parse_report(GENERATED, STATS)
    assert parsed.title == "https://login-paypa1.example"
    assert parsed.threats == [
        "**Phishing:** The page imitates a payment provider login form.",
        "Possible credential harvesting via man-in-the-middle redirects.",
    ]
    assert parsed.reputation_notes == ["Reputation score of -20 indicates a history of abuse."]
    assert parsed.context == ["The domain was registered recently."]
    assert parsed.safety_tips == [
        "Do not enter credentials.",
        "Report the page to your security team.",
        "Enable two-factor authentication.",
        "Check the address bar carefully.",
    ]
    assert parsed.dark_web_notes is None
    dist = parsed.risk_distribution
    assert (dist.safe_pct, dist.malicious_pct, dist.suspicious_pct) == (70, 20, 10)


def test_parsing_is_idempotent() -> None:
    assert parse_report(GENERATED, STATS) == parse_report(GENERATED, STATS)


def test_missing_safety_tips_get_placeholder() -> None:
    text = "**Threats & Vulnerabilities:** Malware dropper.\n**Context:** Shared hosting."
    parsed = parse_report(text, STATS)
    assert parsed.threats == ["Malware dropper."]
    assert parsed.context == ["Shared hosting."]
    assert parsed.safety_tips == ["No specific tips available"]
    assert parsed.reputation_notes == ["No data available"]


def test_empty_section_gets_placeholder() -> None:
    parsed = parse_report("**Threats & Vulnerabilities:**\n- \n**Reputation:** ok", STATS)
    assert parsed.threats == ["No specific threats detected"]
    assert parsed.reputation_notes == ["ok"]


def test_unknown_bold_heading_ends_section() -> None:
    text = (
        "**Safety Tips:**\n- Use 2FA.\n- Update software.\n\n"
        "**Overall Assessment:**\nThe site is high risk.\n\n"
        "**Threats & Vulnerabilities:**\n* **Phishing:** fake login page.\n"
        "- **Conclusion**:\nAvoid it.\n"
    )
    parsed = parse_report(text, STATS)
    assert parsed.safety_tips == ["Use 2FA.", "Update software."]
    assert parsed.threats == ["**Phishing:** fake login page."]


def test_text_without_markers_uses_defaults() -> None:
    parsed = parse_report("The model returned plain prose with no structure.", STATS, input_label="abc.exe")
    assert parsed.title == "abc.exe"
    assert parsed.threats == ["No specific threats detected"]
    assert parsed.reputation_notes == ["No data available"]
    assert parsed.context == ["No data available"]
    assert parsed.safety_tips == ["No specific tips available"]
    assert parsed.risk_distribution == risk_distribution(STATS)


def test_empty_text_defaults_title() -> None:
    assert parse_report("", ProviderStats()).title == "Unknown Input"


def test_dark_web_section_only_when_requested() -> None:
    text = GENERATED.replace("```json", "**Dark Web Detection:** Listed on a paste site.\n```json")
    assert parse_report(text, STATS).dark_web_notes is None
    assert parse_report(text, STATS, is_dark_web_query=True).dark_web_notes == ["Listed on a paste site."]
    assert parse_report(GENERATED, STATS, is_dark_web_query=True).dark_web_notes == [
        "No dark web assessment available"
    ]


def test_malformed_chart_falls_back_to_stats() -> None:
    text = "**Context:** x\n```json\n{\"Safe\": 80, \"Malicious\": \n```"
    assert parse_report(text, STATS).risk_distribution == risk_distribution(STATS)


def test_out_of_range_chart_falls_back_to_stats() -> None:
    text = '```json\n{"Safe": 140, "Malicious": -40, "Suspicious": 0}\n```'
    assert parse_report(text, STATS).risk_distribution == risk_distribution(STATS)


def test_chart_keys_are_case_insensitive() -> None:
    text = '```\n{"safe": 50, "MALICIOUS": 25, "suspicious": 25}\n```'
    dist = parse_report(text, STATS).risk_distribution
    assert (dist.safe_pct, dist.malicious_pct, dist.suspicious_pct) == (50, 25, 25)


def test_fallback_report_is_parseable() -> None:
    metadata = ProviderMetadata(reputation=-20, threat_names=["phish.generic"])
    text = fallback_report("https://bad.example", STATS, metadata)
    parsed = parse_report(text, ProviderStats())
    assert parsed.title == "https://bad.example"
    assert parsed.threats[0] == "Detected threats."
    assert "Known threat names: phish.generic" in parsed.threats
    assert parsed.reputation_notes == ["Score: -20"]
    assert len(parsed.safety_tips) == 4
    assert parsed.risk_distribution == risk_distribution(STATS)


def test_fallback_dark_web_report_is_parseable() -> None:
    clean = ProviderStats(harmless=50, undetected=50)
    text = fallback_report("www.example.com", clean, ProviderMetadata(), is_dark_web_query=True)
    parsed = parse_report(text, clean, is_dark_web_query=True)
    assert parsed.threats[0] == "No specific threats detected."
    assert parsed.reputation_notes == ["No data."]
    assert parsed.dark_web_notes == ["No clear evidence."]
    assert parsed.risk_distribution.safe_pct == 100
