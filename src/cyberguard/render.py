from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from cyberguard.models import ParsedReport, ScanQueued, ScanResult
from cyberguard.report_parser import parse_report
from cyberguard.scoring import status_label

STATUS_STYLE = {
    "Safe": "bold green",
    "Caution": "bold yellow",
    "Unsafe": "bold red",
}


def render_parsed_report(parsed: ParsedReport, console: Console | None = None) -> None:
    console = console or Console()

    sections = Table(title=f"Analysis for {escape(parsed.title)}", show_lines=True)
    sections.add_column("Section", style="cyan")
    sections.add_column("Details")
    rows = [
        ("Threats & Vulnerabilities", parsed.threats),
        ("Reputation", parsed.reputation_notes),
        ("Context", parsed.context),
        ("Safety Tips", parsed.safety_tips),
    ]
    if parsed.dark_web_notes is not None:
        rows.append(("Dark Web Detection", parsed.dark_web_notes))
    for name, items in rows:
        sections.add_row(name, "\n".join(f"- {escape(item)}" for item in items))
    console.print(sections)

    dist = parsed.risk_distribution
    console.print(
        f"[bold]Risk Distribution:[/bold] Safe: {dist.safe_pct}% | "
        f"Malicious: {dist.malicious_pct}% | Suspicious: {dist.suspicious_pct}%"
    )


def render_result(result: ScanResult, console: Console | None = None) -> None:
    console = console or Console()
    status = status_label(result.safety_score)
    stats = result.stats

    summary = (
        f"[bold]Input:[/bold] {escape(result.input_label)}\n"
        f"[bold]Type:[/bold] {result.variant_label}\n"
        f"[bold]Safety Score:[/bold] {result.safety_score}/100\n"
        f"[bold]Engines:[/bold] Malicious: {stats.malicious} | Suspicious: {stats.suspicious} | "
        f"Harmless: {stats.harmless} | Undetected: {stats.undetected}"
    )
    if result.metadata.threat_names:
        summary += f"\n[bold]Known Threats:[/bold] {escape(', '.join(result.metadata.threat_names))}"
    console.print(
        Panel(
            summary,
            title=f"Status: [{STATUS_STYLE[status]}]{status.upper()}[/]",
            border_style=STATUS_STYLE[status],
        )
    )

    parsed = parse_report(
        result.report_text,
        result.stats,
        is_dark_web_query=result.is_dark_web_query,
        input_label=result.input_label,
    )
    render_parsed_report(parsed, console=console)


def render_queued(queued: ScanQueued, console: Console | None = None) -> None:
    console = console or Console()
    console.print(
        Panel(
            f"[bold]Input:[/bold] {escape(queued.input_label)}\n[bold]Analysis ID:[/bold] {queued.analysis_id}",
            title=f"[bold yellow]{queued.message}[/]",
            border_style="bold yellow",
        )
    )
