from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from cyberguard import __version__
from cyberguard.cli import app
from cyberguard.errors import PollTimeoutError
from cyberguard.models import ProviderMetadata, ProviderStats, ScanQueued, ScanResult
from cyberguard.report import fallback_report

runner = CliRunner()


def _result(stats: ProviderStats, score: int) -> ScanResult:
    return ScanResult(
        is_safe=stats.malicious == 0 and stats.suspicious == 0,
        safety_score=score,
        stats=stats,
        metadata=ProviderMetadata(),
        report_text=fallback_report("https://x.example", stats, ProviderMetadata()),
        variant_label="url",
        input_label="https://x.example",
    )


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_invalid_input_rejected() -> None:
    result = runner.invoke(app, ["scan", "definitely not a url"])
    assert result.exit_code == 2
    assert "Scan failed" in result.stdout


def test_scan_renders_result(monkeypatch) -> None:
    def fake_run_scan(request, **kwargs):
        _ = kwargs
        assert request.raw_input == "https://x.example"
        return _result(ProviderStats(harmless=10), 100)

    monkeypatch.setattr("cyberguard.cli.run_scan", fake_run_scan)
    result = runner.invoke(app, ["scan", "https://x.example"])
    assert result.exit_code == 0
    assert "Status" in result.stdout


def test_scan_json_out_and_explain(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr("cyberguard.cli.run_scan", lambda request, **kwargs: _result(ProviderStats(harmless=1), 100))
    out = tmp_path / "result.json"
    scan = runner.invoke(app, ["scan", "https://x.example", "--format", "json", "--out", str(out)])
    assert scan.exit_code == 0
    assert json.loads(out.read_text(encoding="utf-8"))["safety_score"] == 100
    explain = runner.invoke(app, ["explain", str(out)])
    assert explain.exit_code == 0
    assert "Status" in explain.stdout


def test_fail_unsafe_exit_code(monkeypatch) -> None:
    monkeypatch.setattr(
        "cyberguard.cli.run_scan", lambda request, **kwargs: _result(ProviderStats(malicious=3, harmless=1), 25)
    )
    assert runner.invoke(app, ["scan", "https://x.example"]).exit_code == 0
    assert runner.invoke(app, ["scan", "https://x.example", "--fail-unsafe"]).exit_code == 1


def test_darkweb_command_sets_flag(monkeypatch) -> None:
    seen = []

    def fake_run_scan(request, **kwargs):
        _ = kwargs
        seen.append(request)
        return _result(ProviderStats(harmless=1), 100)

    monkeypatch.setattr("cyberguard.cli.run_scan", fake_run_scan)
    result = runner.invoke(app, ["darkweb", "www.market.example"])
    assert result.exit_code == 0
    assert seen[0].is_dark_web_query is True


def test_scan_timeout_exit_code(monkeypatch) -> None:
    def fake_run_scan(request, **kwargs):
        _ = request
        _ = kwargs
        raise PollTimeoutError("an-1", 5)

    monkeypatch.setattr("cyberguard.cli.run_scan", fake_run_scan)
    result = runner.invoke(app, ["scan", "https://x.example"])
    assert result.exit_code == 2
    assert "did not complete" in result.stdout


def test_scan_file_queued(monkeypatch, tmp_path: Path) -> None:
    sample = tmp_path / "a.exe"
    sample.write_bytes(b"MZ")

    def fake_run_scan(request, **kwargs):
        _ = kwargs
        return ScanQueued(analysis_id="an-q", input_label=request.raw_input, variant_label="file")

    monkeypatch.setattr("cyberguard.cli.run_scan", fake_run_scan)
    result = runner.invoke(app, ["scan-file", str(sample)])
    assert result.exit_code == 3
    assert "an-q" in result.stdout


def test_scan_file_rejects_empty(tmp_path: Path) -> None:
    sample = tmp_path / "empty.bin"
    sample.write_bytes(b"")
    result = runner.invoke(app, ["scan-file", str(sample)])
    assert result.exit_code == 2
    assert "Valid file is required" in result.stdout


def test_parse_command(tmp_path: Path) -> None:
    report = tmp_path / "report.md"
    report.write_text("**Safety Tips:**\n1. Patch often.\n2. Use 2FA.\n", encoding="utf-8")
    stats = tmp_path / "stats.json"
    stats.write_text('{"harmless": 3, "malicious": 1}', encoding="utf-8")
    result = runner.invoke(app, ["parse", str(report), "--stats", str(stats), "--format", "json"])
    assert result.exit_code == 0
    assert '"safety_tips"' in result.stdout
    assert "Patch often." in result.stdout
    assert '"safe_pct": 75' in result.stdout


def test_policy_show() -> None:
    result = runner.invoke(app, ["policy", "show"])
    assert result.exit_code == 0
    assert "URL: 5 x 2s -> fail" in result.stdout


def test_malformed_policy_file_reported(tmp_path: Path) -> None:
    policy = tmp_path / "policies.yaml"
    policy.write_text("url: [unclosed\n", encoding="utf-8")
    result = runner.invoke(app, ["scan", "a" * 64, "--policy", str(policy)])
    assert result.exit_code == 2
    assert "Scan failed" in result.stdout

    shown = runner.invoke(app, ["policy", "show", "--policy", str(policy)])
    assert shown.exit_code == 2
    assert "Invalid poll policy file" in shown.stdout
