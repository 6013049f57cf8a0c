from __future__ import annotations

import json
import logging
from pathlib import Path

import typer
import yaml  # type: ignore[import-untyped]
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from cyberguard import __version__
from cyberguard.ai import AIConfig
from cyberguard.errors import ScanError
from cyberguard.models import ProviderStats, ScanQueued, ScanRequest, ScanResult
from cyberguard.policies import load_builtin_policies, load_policy_file, policy_summary
from cyberguard.render import render_parsed_report, render_queued, render_result
from cyberguard.report_parser import parse_report
from cyberguard.scan import file_request_from_path, run_scan, text_request
from cyberguard.settings import load_dotenv

app = typer.Typer(help="CyberGuard: URL, hash and file safety scanner with AI reports")
policy_app = typer.Typer(help="Poll policy operations")
app.add_typer(policy_app, name="policy")
console = Console()

EXIT_UNSAFE = 1
EXIT_FAILED = 2
EXIT_QUEUED = 3


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    env_file: Path = typer.Option(Path(".env"), "--env-file", help="Load settings from this .env file"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    load_dotenv(env_file)


def _execute(
    request: ScanRequest,
    format: str,
    out: Path | None,
    policy_file: Path | None,
    ai_provider: str,
    ai_model: str | None,
    fail_unsafe: bool,
) -> None:
    if format not in {"text", "json"}:
        console.print("[bold red]Invalid --format:[/] expected text or json")
        raise typer.Exit(EXIT_FAILED)
    try:
        policies = load_policy_file(policy_file) if policy_file else load_builtin_policies()
        outcome = run_scan(request, policies=policies, ai_config=AIConfig(provider=ai_provider, model=ai_model))
    except (ScanError, ValueError, yaml.YAMLError) as exc:
        console.print(f"[bold red]Scan failed:[/] {escape(str(exc))}")
        raise typer.Exit(EXIT_FAILED)

    payload = outcome.to_json()
    if format == "json":
        console.print(payload, markup=False, highlight=False, soft_wrap=True)
    elif isinstance(outcome, ScanQueued):
        render_queued(outcome, console=console)
    else:
        render_result(outcome, console=console)
    if out:
        out.write_text(payload, encoding="utf-8")
        console.print(f"[cyan]Saved JSON result:[/] {out}")

    if isinstance(outcome, ScanQueued):
        raise typer.Exit(EXIT_QUEUED)
    if fail_unsafe and not outcome.is_safe:
        raise typer.Exit(EXIT_UNSAFE)


@app.command("version")
def version() -> None:
    console.print(f"cyberguard {__version__}")


@app.command("scan")
def scan_cmd(
    target: str = typer.Argument(..., help="URL or MD5/SHA-1/SHA-256 hash"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    out: Path | None = typer.Option(None, "--out", help="Write JSON result to file"),
    policy_file: Path | None = typer.Option(None, "--policy", help="Custom poll policy file"),
    ai_provider: str = typer.Option("auto", "--ai-provider", help="auto|gemini|openai|openai_compatible|anthropic"),
    ai_model: str | None = typer.Option(None, "--ai-model", help="Override the generative model"),
    fail_unsafe: bool = typer.Option(False, "--fail-unsafe", help="Exit 1 when the input is not safe"),
) -> None:
    try:
        request = text_request(target)
    except ScanError as exc:
        console.print(f"[bold red]Scan failed:[/] {exc}")
        raise typer.Exit(EXIT_FAILED)
    _execute(request, format, out, policy_file, ai_provider, ai_model, fail_unsafe)


@app.command("darkweb")
def darkweb_cmd(
    target: str = typer.Argument(..., help="URL or MD5/SHA-1/SHA-256 hash"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    out: Path | None = typer.Option(None, "--out", help="Write JSON result to file"),
    policy_file: Path | None = typer.Option(None, "--policy", help="Custom poll policy file"),
    ai_provider: str = typer.Option("auto", "--ai-provider"),
    ai_model: str | None = typer.Option(None, "--ai-model"),
    fail_unsafe: bool = typer.Option(False, "--fail-unsafe", help="Exit 1 when the input is not safe"),
) -> None:
    try:
        request = text_request(target, is_dark_web_query=True)
    except ScanError as exc:
        console.print(f"[bold red]Dark web scan failed:[/] {exc}")
        raise typer.Exit(EXIT_FAILED)
    _execute(request, format, out, policy_file, ai_provider, ai_model, fail_unsafe)


@app.command("scan-file")
def scan_file_cmd(
    path: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="File to upload"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    out: Path | None = typer.Option(None, "--out", help="Write JSON result to file"),
    policy_file: Path | None = typer.Option(None, "--policy", help="Custom poll policy file"),
    ai_provider: str = typer.Option("auto", "--ai-provider"),
    ai_model: str | None = typer.Option(None, "--ai-model"),
    fail_unsafe: bool = typer.Option(False, "--fail-unsafe", help="Exit 1 when the file is not safe"),
) -> None:
    try:
        request = file_request_from_path(path)
    except ScanError as exc:
        console.print(f"[bold red]File scan failed:[/] {exc}")
        raise typer.Exit(EXIT_FAILED)
    _execute(request, format, out, policy_file, ai_provider, ai_model, fail_unsafe)


@app.command("explain")
def explain_cmd(result: Path = typer.Argument(..., exists=True, readable=True)) -> None:
    data = json.loads(result.read_text(encoding="utf-8"))
    render_result(ScanResult.model_validate(data), console=console)


@app.command("parse")
def parse_cmd(
    report: Path = typer.Argument(..., exists=True, readable=True, help="Report text file"),
    stats: Path | None = typer.Option(None, "--stats", help="JSON file with engine stats"),
    dark_web: bool = typer.Option(False, "--dark-web", help="Expect a Dark Web Detection section"),
    label: str | None = typer.Option(None, "--label", help="Title to use when the report has none"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    engine_stats = ProviderStats()
    if stats:
        engine_stats = ProviderStats.model_validate(json.loads(stats.read_text(encoding="utf-8")))
    parsed = parse_report(
        report.read_text(encoding="utf-8"), engine_stats, is_dark_web_query=dark_web, input_label=label
    )
    if format == "json":
        console.print(parsed.model_dump_json(indent=2), markup=False, highlight=False, soft_wrap=True)
    else:
        render_parsed_report(parsed, console=console)


@policy_app.command("show")
def policy_show(path: Path | None = typer.Option(None, "--policy", help="Custom poll policy file")) -> None:
    try:
        table = load_policy_file(path) if path else load_builtin_policies()
    except (ValueError, yaml.YAMLError) as exc:
        console.print(f"[bold red]Invalid poll policy file:[/] {escape(str(exc))}")
        raise typer.Exit(EXIT_FAILED)
    console.print(Panel(json.dumps(table.model_dump(mode="json"), indent=2), title="Poll policies"))
    console.print(policy_summary(table))


if __name__ == "__main__":
    app()
