"""Rich rendering for CLI output

Everything that came from the marketplace is untrusted third-party text and
goes through sanitize_text / sanitize_url before it is printed.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from skillsync.core.scanner.content_scanner import CRITICAL
from skillsync.marketplace.client import SkillListing
from skillsync.skills.sanitize import sanitize_text, sanitize_url

UNTRUSTED_DISCLAIMER = (
    "Skill data below comes from third-party listings. Names, descriptions, and tags "
    "are user-submitted and unverified. Always review source code before installing."
)

RISK_STYLES = {
    "safe": "green",
    "low": "yellow",
    "medium": "dark_orange",
    "high": "red",
    "critical": "bold red",
}

ACTION_ICONS = {
    "install": "+",
    "update": "~",
    "remove": "-",
    "skip-conflict": "!",
    "skip-risk": "!",
    "unmanage": "x",
    "error": "E",
}


def risk_label(level: str) -> str:
    style = RISK_STYLES.get(level, "white")
    return f"[{style}]{level.upper()}[/{style}]"


def clean(value: Optional[str]) -> str:
    """Sanitize untrusted text and escape rich markup in it."""
    return escape(sanitize_text(value))


def format_updated(value) -> str:
    if value is None:
        return "Unknown"
    if isinstance(value, int):
        return datetime.fromtimestamp(value, tz=timezone.utc).strftime("%Y-%m-%d")
    return clean(str(value)) or "Unknown"


def print_disclaimer(console: Console) -> None:
    console.print(f"[dim]Note: {UNTRUSTED_DISCLAIMER}[/dim]\n")


def print_listing(console: Console, listing: SkillListing, index: int) -> None:
    console.print(f"[bold cyan][{index}][/bold cyan] [bold]{clean(listing.name)}[/bold]")
    console.print(f"    {clean(listing.description) or '[dim]No description[/dim]'}")
    console.print(f"    Author: {clean(listing.author) or 'Unknown'}   Stars: {listing.stars}   "
                  f"Updated: {format_updated(listing.updated_at)}")
    url = sanitize_url(listing.github_url) if listing.github_url else ""
    if url:
        console.print(f"    GitHub: {escape(url)}")
    if listing.tags:
        console.print(f"    Tags: {', '.join(clean(t) for t in listing.tags)}")
    if listing.score is not None:
        console.print(f"    Relevance: {listing.score * 100:.1f}%")


def print_listings(console: Console, listings: Iterable[SkillListing], start: int = 1) -> None:
    for offset, listing in enumerate(listings):
        print_listing(console, listing, start + offset)
        console.print()


def print_threats(console: Console, threats) -> None:
    for threat in threats:
        style = "red" if threat.severity == CRITICAL else "yellow"
        line_info = f" (line {threat.line})" if threat.line else ""
        console.print(
            f"  [{style}]{threat.severity.upper()}[/{style}] [{escape(threat.category)}]"
            f"{line_info}: {escape(threat.description)}"
        )


def print_scan_report(console: Console, url: str, scan) -> None:
    console.print(Panel.fit(f"Security Scan Report\n{escape(sanitize_url(url))}", style="bold"))
    console.print(f"Risk Level:     {risk_label(scan.risk_level)}")
    console.print(f"Files Scanned:  {scan.files_scanned}")
    console.print(f"Safe to Use:    {'Yes' if scan.safe else '[red]NO[/red]'}")
    console.print(f"Content Hash:   {scan.content_hash or 'N/A'}")
    if scan.skipped_binary:
        console.print(f"Binary files (not scanned): {escape(', '.join(scan.skipped_binary))}")
    if scan.skipped_suspicious:
        console.print(f"Suspicious filenames flagged: {escape(', '.join(scan.skipped_suspicious))}")

    console.print("\n[bold]Recommendation[/bold]")
    console.print(escape(scan.recommendation))

    if scan.threats:
        console.print("\n[bold]Threats Found[/bold]")
        print_threats(console, scan.threats)

    if scan.errors:
        console.print("\n[bold]Scanner Notes[/bold]")
        for note in scan.errors:
            console.print(f"  - {escape(note)}")

    console.print(
        "\n[dim]This scan reflects the code at the time of scanning. The repository could "
        "change afterwards. Verify the content hash before installing.[/dim]"
    )


def threat_categories(threats) -> str:
    counts = {}
    for threat in threats:
        counts[threat.category] = counts.get(threat.category, 0) + 1
    return ", ".join(f"{category}({count})" for category, count in counts.items())


def skills_table(rows: List[dict], show_scope: bool) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Skill", style="cyan")
    if show_scope:
        table.add_column("Scope")
    table.add_column("Risk")
    table.add_column("Files", justify="right")
    table.add_column("SKILL.md")
    table.add_column("Last Scanned")

    for row in rows:
        cells = [row["name"]]
        if show_scope:
            cells.append(row["scope"])
        cells.extend([
            risk_label(row["risk_level"]),
            str(row["files_count"]),
            "Yes" if row["has_manifest"] else "No",
            row["last_scanned"].split("T")[0],
        ])
        table.add_row(*cells)
    return table


def sync_report_table(report) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("Skill", style="cyan")
    table.add_column("Reason")

    for i, action in enumerate(report.actions, start=1):
        icon = ACTION_ICONS.get(action.type, "?")
        table.add_row(
            str(i),
            escape(f"[{icon}] {action.type}"),
            clean(action.skill_name) or "-",
            clean(action.reason),
        )
    return table
