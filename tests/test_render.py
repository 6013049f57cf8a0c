from __future__ import annotations

from rich.console import Console

from cyberguard.models import ProviderMetadata, ProviderStats, ScanQueued, ScanResult
from cyberguard.render import render_queued, render_result
from cyberguard.report import fallback_report


def _result(stats: ProviderStats, score: int, dark_web: bool = False) -> ScanResult:
    metadata = ProviderMetadata(threat_names=["trojan.[generic]"] if stats.malicious else [])
    return ScanResult(
        is_safe=stats.malicious == 0 and stats.suspicious == 0,
        safety_score=score,
        stats=stats,
        metadata=metadata,
        report_text=fallback_report("https://x.example", stats, metadata, is_dark_web_query=dark_web),
        variant_label="darkweb" if dark_web else "url",
        input_label="https://x.example",
        is_dark_web_query=dark_web,
    )


def test_render_safe_result() -> None:
    console = Console(record=True, width=140)
    render_result(_result(ProviderStats(harmless=9, undetected=1), 100), console=console)
    output = console.export_text()
    assert "Status: SAFE" in output
    assert "100/100" in output
    assert "Safety Tips" in output
    assert "Dark Web Detection" not in output
    assert "Safe: 100% | Malicious: 0% | Suspicious: 0%" in output


def test_render_unsafe_dark_web_result() -> None:
    console = Console(record=True, width=140)
    render_result(_result(ProviderStats(malicious=5, harmless=5), 30, dark_web=True), console=console)
    output = console.export_text()
    assert "Status: UNSAFE" in output
    assert "Known Threats: trojan.[generic]" in output
    assert "Dark Web Detection" in output


def test_render_queued() -> None:
    console = Console(record=True, width=140)
    render_queued(ScanQueued(analysis_id="an-7", input_label="a.exe", variant_label="file"), console=console)
    output = console.export_text()
    assert "an-7" in output
    assert "still in progress" in output
