"""SkillSync CLI

Provides commands:
- skillsync search <query>          - Keyword search on the marketplace
- skillsync ai-search <query>       - Semantic search on the marketplace
- skillsync scan <url>              - Security-scan a GitHub package
- skillsync search-safe <query>     - Search and scan the top results
- skillsync install <url>           - Scan and install a package
- skillsync uninstall <name>        - Remove an installed package
- skillsync list                    - Installed packages with risk levels
- skillsync audit <name>            - Rescan one installed package
- skillsync suggest                 - Recommendations based on installed packages
- skillsync compare <a> <b>         - Side-by-side risk comparison
- skillsync sync ...                - Subscription sync (add/remove/config/set/now/status/watch)
"""

import json
import sys
import time
from dataclasses import dataclass
from typing import List, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from skillsync import __version__
from skillsync.cli import render
from skillsync.context import SkillSyncContext
from skillsync.core.exceptions import SkillSyncError
from skillsync.core.logging import configure_logging
from skillsync.core.scanner.content_scanner import RISK_LEVEL_ORDER, risk_rank
from skillsync.core.storage.paths import SkillScope
from skillsync.skills.sanitize import sanitize_text, sanitize_url
from skillsync.sync.engine import ACTION_INSTALL, ACTION_REMOVE, ACTION_UPDATE

console = Console()

MAX_QUERY_LENGTH = 200
MAX_SUGGEST_QUERY_NAMES = 10


@dataclass
class CliState:
    context: SkillSyncContext
    scope: SkillScope


pass_state = click.make_pass_decorator(CliState)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")
    sys.exit(1)


def _check_query(query: str) -> str:
    if not query.strip() or len(query) > MAX_QUERY_LENGTH:
        _fail(f"Query must be 1-{MAX_QUERY_LENGTH} characters")
    return query


def _scopes(state: CliState, all_scopes: bool) -> List[SkillScope]:
    return [SkillScope.GLOBAL, SkillScope.PROJECT] if all_scopes else [state.scope]


@click.group()
@click.version_option(version=__version__, prog_name="skillsync")
@click.option(
    "--scope",
    type=click.Choice([s.value for s in SkillScope]),
    default=SkillScope.GLOBAL.value,
    show_default=True,
    help="global (~/.claude/skills) or project (.claude/skills in cwd)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, scope, verbose):
    """SkillSync - search, scan, install and sync skill packages"""
    context = ctx.obj if isinstance(ctx.obj, SkillSyncContext) else SkillSyncContext(watch=False)
    configure_logging("DEBUG" if verbose else context.settings.log_level)
    ctx.obj = CliState(context=context, scope=SkillScope(scope))
    ctx.call_on_close(context.shutdown)


# ============================================
# Marketplace
# ============================================

@cli.command()
@click.argument("query")
@click.option("--limit", type=click.IntRange(1, 100), default=20, help="Max results")
@click.option("--sort", "sort_by", type=click.Choice(["stars", "recent"]), default="recent", help="Sort order")
@pass_state
def search(state, query, limit, sort_by):
    """Keyword search on the marketplace

    Examples:
        skillsync search "code review"
        skillsync search testing --sort stars --limit 5
    """
    _check_query(query)
    try:
        result = state.context.marketplace.search(query, limit=limit, sort_by=sort_by)
    except SkillSyncError as e:
        _fail(f"Search failed: {e}")

    if not result.skills:
        console.print(f'[yellow]No skills found for "{render.clean(query)}".[/yellow]')
        return

    console.print(f'\n[bold]Search:[/bold] "{render.clean(query)}"')
    console.print(f"[dim]{len(result.skills)} result(s), sorted by {sort_by}[/dim]\n")
    render.print_disclaimer(console)
    render.print_listings(console, result.skills)


@cli.command("ai-search")
@click.argument("query")
@click.option("--limit", type=click.IntRange(1, 50), default=10, help="Max results")
@pass_state
def ai_search(state, query, limit):
    """Semantic search on the marketplace"""
    _check_query(query)
    try:
        result = state.context.marketplace.ai_search(query, limit=limit)
    except SkillSyncError as e:
        _fail(f"AI search failed: {e}")

    if not result.skills:
        console.print(f'[yellow]No skills found for "{render.clean(query)}".[/yellow]')
        return

    console.print(f'\n[bold]AI Search:[/bold] "{render.clean(query)}"')
    console.print(f"[dim]{len(result.skills)} result(s)[/dim]\n")
    render.print_disclaimer(console)
    render.print_listings(console, result.skills)


@cli.command()
@click.argument("url")
@click.option("--json", "output_json", is_flag=True, help="JSON format output")
@pass_state
def scan(state, url, output_json):
    """Security-scan a package on GitHub without installing it

    Examples:
        skillsync scan https://github.com/owner/repo/tree/main/skills/my-skill
    """
    try:
        result = state.context.fetcher.fetch_and_scan(url)
    except SkillSyncError as e:
        _fail(f"Scan failed: {e}")

    if output_json:
        console.print_json(json.dumps(result.to_dict()))
        return
    render.print_scan_report(console, url, result)


@cli.command("search-safe")
@click.argument("query")
@click.option("--limit", type=click.IntRange(1, 20), default=10, help="Max search results")
@click.option("--scan-top", type=click.IntRange(1, 5), default=3, help="How many top results to scan")
@click.option("--sort", "sort_by", type=click.Choice(["stars", "recent"]), default="recent", help="Sort order")
@pass_state
def search_safe(state, query, limit, scan_top, sort_by):
    """Search the marketplace and security-scan the top results"""
    _check_query(query)
    try:
        result = state.context.marketplace.search(query, limit=limit, sort_by=sort_by)
    except SkillSyncError as e:
        _fail(f"Safe search failed: {e}")

    if not result.skills:
        console.print(f'[yellow]No skills found for "{render.clean(query)}".[/yellow]')
        return

    to_scan = min(scan_top, len(result.skills))
    console.print(f'\n[bold]Safe Search:[/bold] "{render.clean(query)}"')
    console.print(f"[dim]{len(result.skills)} result(s), scanning top {to_scan}[/dim]\n")
    render.print_disclaimer(console)

    for index, listing in enumerate(result.skills[:to_scan], start=1):
        render.print_listing(console, listing, index)
        if not listing.github_url:
            console.print("    Security: [yellow]No GitHub URL, cannot scan[/yellow]\n")
            continue
        try:
            scan_result = state.context.fetcher.fetch_and_scan(listing.github_url)
        except SkillSyncError:
            console.print("    Security: [yellow]Scan failed, review manually[/yellow]\n")
            continue

        console.print(
            f"    Security: {render.risk_label(scan_result.risk_level)} "
            f"({scan_result.files_scanned} files, hash: {scan_result.content_hash[:12]}...)"
        )
        console.print(f"    Recommendation: {escape(scan_result.recommendation)}")
        if scan_result.threats:
            console.print(f"    Threat categories: {render.threat_categories(scan_result.threats)}")
        if scan_result.errors:
            console.print(f"    Scanner notes: {len(scan_result.errors)} issue(s), run `skillsync scan` for details")
        console.print()

    if len(result.skills) > to_scan:
        console.print("[bold]Additional results (not scanned)[/bold]\n")
        render.print_listings(console, result.skills[to_scan:], start=to_scan + 1)


# ============================================
# Install / uninstall
# ============================================

@cli.command()
@click.argument("url")
@click.option("--name", help="Package name (inferred from the URL if omitted)")
@click.option("--force", is_flag=True, help="Overwrite an existing package and accept medium/high risk")
@pass_state
def install(state, url, name, force):
    """Scan a package on GitHub, then install it

    Critical findings always block the install.

    Examples:
        skillsync install https://github.com/owner/repo/tree/main/skills/my-skill
        skillsync --scope project install <url> --name reviewer --force
    """
    try:
        result = state.context.installer(state.scope).install(url, name=name, force=force)
    except SkillSyncError as e:
        _fail(f"Install failed: {e}")

    try:
        state.context.registry(state.scope).scan_skill(result.name)
    except (SkillSyncError, OSError) as e:
        console.print(f"[dim]Registry refresh failed: {escape(str(e))}[/dim]")

    console.print(f"\n[green]Skill installed[/green] ({state.scope.value})\n")
    console.print(f"  Path:          {result.install_path}")
    console.print(f"  Files:         {result.files_count}")
    console.print(f"  Content Hash:  {result.content_hash[:16]}...")
    console.print(f"  SKILL.md:      {'Found' if result.has_manifest else 'Missing (skill may not load)'}")
    console.print(f"  Security:      {escape(result.scan_summary)}")
    if result.deps_installed:
        console.print("  npm install:   Completed (--ignore-scripts)")
    if result.warnings:
        console.print("\n[yellow]Warnings[/yellow]")
        for warning in result.warnings:
            console.print(f"  - {escape(warning)}")


@cli.command()
@click.argument("name")
@pass_state
def uninstall(state, name):
    """Remove an installed package"""
    try:
        result = state.context.installer(state.scope).uninstall(name)
    except SkillSyncError as e:
        _fail(f"Uninstall failed: {e}")

    state.context.registry(state.scope).remove_skill(name)
    if state.context.lock_store(state.scope).remove(name):
        console.print("[dim]Removed from sync management.[/dim]")
    console.print(f"[green]Removed[/green] {result.removed_path}")
    console.print(escape(result.message))


# ============================================
# Local packages
# ============================================

@cli.command("list")
@click.option("--all", "all_scopes", is_flag=True, help="Show global and project scopes")
@click.option("--refresh", is_flag=True, help="Resync with disk before listing")
@click.option("--json", "output_json", is_flag=True, help="JSON format output")
@pass_state
def list_skills(state, all_scopes, refresh, output_json):
    """List installed packages with their security status"""
    scopes = _scopes(state, all_scopes)
    rows = []
    by_risk = {level: 0 for level in RISK_LEVEL_ORDER}

    for scope in scopes:
        registry = state.context.ensure_initialized(scope)
        if refresh:
            registry.resync()
        summary = registry.get_summary()
        rows.extend(summary["skills"])
        for level, count in summary["by_risk"].items():
            by_risk[level] = by_risk.get(level, 0) + count

    if output_json:
        console.print_json(json.dumps({"skills": rows, "by_risk": by_risk}))
        return

    if not rows:
        label = "any scope" if all_scopes else f"{state.scope.value} scope"
        console.print(f"No skills found in {label}.")
        return

    title = "All Scopes" if all_scopes else state.scope.value
    console.print(f"\n[bold]Installed Skills ({len(rows)}), {title}[/bold]")
    console.print(render.skills_table(rows, show_scope=all_scopes))
    risk_summary = ", ".join(f"{level}: {count}" for level, count in by_risk.items() if count > 0)
    console.print(f"Risk Summary: {risk_summary or 'none'}")


@cli.command()
@click.argument("name")
@pass_state
def audit(state, name):
    """Rescan one installed package and show every finding"""
    try:
        skill = state.context.registry(state.scope).scan_skill(name)
    except SkillSyncError as e:
        _fail(f"Audit failed: {e}")

    result = skill.scan_result
    console.print(f'\n[bold]Security Audit: "{escape(name)}" ({state.scope.value})[/bold]')
    console.print(f"Path:          {skill.path}")
    console.print(f"Risk Level:    {render.risk_label(result.risk_level)}")
    console.print(f"Files Scanned: {skill.files_count}")
    console.print(f"Total Size:    {round(skill.total_size / 1024)}KB")
    console.print(f"Safe to Use:   {'Yes' if result.safe else '[red]NO[/red]'}")
    console.print(f"SKILL.md:      {'Found' if skill.has_manifest else 'Missing'}")
    console.print(f"Content Hash:  {skill.content_hash}")
    console.print(f"Last Scanned:  {skill.last_scanned.isoformat()}")
    console.print("\n[bold]Recommendation[/bold]")
    console.print(escape(result.recommendation))

    if result.threats:
        console.print("\n[bold]Threats Found[/bold]")
        render.print_threats(console, result.threats)
    else:
        console.print("\n[green]No threats found.[/green] This skill passed all security checks.")


@cli.command()
@click.option("--context", "work_context", help="What you are working on, e.g. 'React testing'")
@click.option("--limit", type=click.IntRange(1, 20), default=5, help="Max suggestions")
@pass_state
def suggest(state, work_context, limit):
    """Suggest packages similar to the installed ones"""
    installed = state.context.ensure_initialized(state.scope).list_skills()
    installed_names = {s.name.lower() for s in installed}

    query_parts = []
    if work_context:
        query_parts.append(sanitize_text(work_context))
    names = [s.name.replace("-", " ").replace("_", " ") for s in installed[:MAX_SUGGEST_QUERY_NAMES]]
    if names:
        query_parts.append(f"similar to {', '.join(names)}")
    if not query_parts:
        query_parts.append("popular useful skills")
    query = ", ".join(query_parts)[:MAX_QUERY_LENGTH]

    fetch_limit = min(limit + len(installed) + 5, 50)
    try:
        result = state.context.marketplace.ai_search(query, limit=fetch_limit)
    except SkillSyncError as e:
        _fail(f"Suggest failed: {e}")

    suggestions = [
        s for s in result.skills if sanitize_text(s.name).lower() not in installed_names
    ][:limit]

    if not suggestions:
        if installed:
            console.print(
                f"No new skill suggestions found based on your {len(installed)} installed "
                f"skill(s) in {state.scope.value} scope."
            )
        else:
            console.print("No skill suggestions found. Try providing --context.")
        return

    basis = f"your {len(installed)} installed skill(s)" if installed else "general recommendations"
    console.print(f"\n[bold]Skill Suggestions ({state.scope.value})[/bold]")
    console.print(f"[dim]Based on {basis}. {len(suggestions)} suggestion(s).[/dim]\n")
    render.print_disclaimer(console)
    render.print_listings(console, suggestions)


@dataclass
class _ComparedSkill:
    name: str
    risk_level: str
    files_count: int
    has_manifest: Optional[bool]
    threat_count: int
    threat_categories: List[str]
    safe: bool
    source: str

    @property
    def recommendation(self) -> str:
        if not self.safe:
            return "Not recommended"
        if self.risk_level == "safe":
            return "Safe to use"
        return "Use with caution"


def _categories(threats) -> List[str]:
    return list(dict.fromkeys(t.category for t in threats))


def _resolve_for_compare(state: CliState, value: str) -> _ComparedSkill:
    """Resolve a GitHub URL, an installed name, or a marketplace search hit."""
    if value.startswith("https://"):
        result = state.context.fetcher.fetch_and_scan(value)
        return _ComparedSkill(
            name=sanitize_text(value.rstrip("/").split("/")[-1]) or "unknown",
            risk_level=result.risk_level,
            files_count=result.files_scanned,
            has_manifest=None,
            threat_count=len(result.threats),
            threat_categories=_categories(result.threats),
            safe=result.safe,
            source=sanitize_url(value),
        )

    local = state.context.ensure_initialized(state.scope).get_skill(value)
    if local is not None:
        return _ComparedSkill(
            name=local.name,
            risk_level=local.risk_level,
            files_count=local.files_count,
            has_manifest=local.has_manifest,
            threat_count=len(local.scan_result.threats),
            threat_categories=_categories(local.scan_result.threats),
            safe=local.scan_result.safe,
            source=f"installed locally ({state.scope.value})",
        )

    hits = state.context.marketplace.search(value, limit=1).skills
    if hits and hits[0].github_url:
        result = state.context.fetcher.fetch_and_scan(hits[0].github_url)
        return _ComparedSkill(
            name=sanitize_text(hits[0].name),
            risk_level=result.risk_level,
            files_count=result.files_scanned,
            has_manifest=None,
            threat_count=len(result.threats),
            threat_categories=_categories(result.threats),
            safe=result.safe,
            source=sanitize_url(hits[0].github_url),
        )

    raise SkillSyncError(
        f'Could not find skill "{sanitize_text(value)}". Provide a GitHub URL or an installed skill name.'
    )


@cli.command()
@click.argument("skill_a")
@click.argument("skill_b")
@pass_state
def compare(state, skill_a, skill_b):
    """Compare two packages (GitHub URLs or installed names)"""
    try:
        a = _resolve_for_compare(state, skill_a)
        b = _resolve_for_compare(state, skill_b)
    except SkillSyncError as e:
        _fail(f"Compare failed: {e}")

    def manifest(s: _ComparedSkill) -> str:
        return "Yes" if s.has_manifest else "No / Unknown"

    table = Table(title="Skill Comparison", show_header=True, header_style="bold")
    table.add_column("Property")
    table.add_column(escape(a.name))
    table.add_column(escape(b.name))
    table.add_row("Source", escape(a.source), escape(b.source))
    table.add_row("Risk Level", render.risk_label(a.risk_level), render.risk_label(b.risk_level))
    table.add_row("Files", str(a.files_count), str(b.files_count))
    table.add_row("Threats", str(a.threat_count), str(b.threat_count))
    table.add_row(
        "Threat Categories",
        ", ".join(a.threat_categories) or "None",
        ", ".join(b.threat_categories) or "None",
    )
    table.add_row("SKILL.md", manifest(a), manifest(b))
    table.add_row("Safe", "Yes" if a.safe else "No", "Yes" if b.safe else "No")
    table.add_row("Recommendation", a.recommendation, b.recommendation)
    console.print(table)

    if a.risk_level == b.risk_level:
        console.print(f"Both skills have the same risk level ({a.risk_level.upper()}).")
    else:
        safer = a if risk_rank(a.risk_level) <= risk_rank(b.risk_level) else b
        console.print(f"[bold]{escape(safer.name)}[/bold] has a lower risk level and may be the safer choice.")
    console.print("[dim]Comparison is based on point-in-time scans. Repository contents may change.[/dim]")


# ============================================
# Sync
# ============================================

@cli.group()
def sync():
    """Subscription-driven sync of installed packages"""
    pass


@sync.command("add")
@click.argument("query")
@click.option("--author", "authors", multiple=True, help="Only packages by this author (repeatable)")
@click.option("--tag", "tags", multiple=True, help="Only packages with this tag (repeatable)")
@click.option("--limit", type=click.IntRange(1, 100), help="Max results per sync (default 20)")
@click.option("--sort", "sort_by", type=click.Choice(["stars", "recent"]), help="Sort order (default stars)")
@pass_state
def sync_add(state, query, authors, tags, limit, sort_by):
    """Add a subscription"""
    _check_query(query)
    store = state.context.config_store(state.scope)
    policy, subscription = store.add_subscription(
        query=query,
        authors=list(authors),
        tags=list(tags),
        limit=limit,
        sort_by=sort_by,
    )
    console.print(f"[green]Subscription added[/green] ({state.scope.value})")
    console.print(f"  ID:    {subscription.id}")
    console.print(f'  Query: "{render.clean(query)}"')
    if authors:
        console.print(f"  Authors: {escape(', '.join(authors))}")
    if tags:
        console.print(f"  Tags: {escape(', '.join(tags))}")
    console.print(f"Total subscriptions: {len(policy.subscriptions)}")


@sync.command("remove")
@click.argument("subscription_id")
@pass_state
def sync_remove(state, subscription_id):
    """Remove a subscription by ID"""
    policy, removed = state.context.config_store(state.scope).remove_subscription(subscription_id)
    if not removed:
        _fail(f"Subscription {subscription_id} not found.")
    console.print(f"[green]Subscription removed[/green] ({state.scope.value}): {subscription_id}")
    console.print(f"Remaining subscriptions: {len(policy.subscriptions)}")


def _print_policy(policy) -> None:
    console.print(f"  Enabled:         {policy.enabled}")
    console.print(f"  Sync Interval:   {policy.sync_interval_hours}h (0=manual only)")
    console.print(f"  Max Risk Level:  {policy.max_risk_level}")
    console.print(f"  Conflict Policy: {policy.conflict_policy}")
    console.print(f"  Auto-Remove:     {policy.auto_remove}")


@sync.command("config")
@pass_state
def sync_config(state):
    """Show sync settings and subscriptions"""
    policy = state.context.config_store(state.scope).read()
    console.print(f"\n[bold]SkillSync Configuration ({state.scope.value})[/bold]")
    _print_policy(policy)

    if not policy.subscriptions:
        console.print("\nNo subscriptions configured. Use `skillsync sync add <query>` to create one.")
        return

    table = Table(title="Subscriptions", show_header=True, header_style="bold")
    for column in ("#", "Query", "Authors", "Tags", "Limit", "Sort", "Enabled", "ID"):
        table.add_column(column)
    for i, sub in enumerate(policy.subscriptions, start=1):
        table.add_row(
            str(i),
            render.clean(sub.query),
            escape(", ".join(sub.authors)) if sub.authors else "-",
            escape(", ".join(sub.tags)) if sub.tags else "-",
            str(sub.effective_limit),
            sub.effective_sort,
            "Yes" if sub.enabled else "No",
            sub.id,
        )
    console.print(table)


@sync.command("set")
@click.option("--interval", "sync_interval_hours", type=click.FloatRange(0, 168), help="Hours between syncs, 0=manual")
@click.option("--max-risk", "max_risk_level", type=click.Choice(["safe", "low", "medium"]), help="Max risk for auto-install")
@click.option("--conflict-policy", type=click.Choice(["skip", "overwrite", "unmanage"]), help="Handling of locally modified skills")
@click.option("--auto-remove/--no-auto-remove", default=None, help="Remove skills no longer matched")
@click.option("--enable/--disable", "enabled", default=None, help="Enable or disable sync")
@pass_state
def sync_set(state, sync_interval_hours, max_risk_level, conflict_policy, auto_remove, enabled):
    """Change sync settings"""
    changes = {
        key: value
        for key, value in {
            "sync_interval_hours": sync_interval_hours,
            "max_risk_level": max_risk_level,
            "conflict_policy": conflict_policy,
            "auto_remove": auto_remove,
            "enabled": enabled,
        }.items()
        if value is not None
    }
    if not changes:
        _fail("No settings provided. Use --interval, --max-risk, --conflict-policy, --auto-remove or --enable.")

    policy = state.context.config_store(state.scope).merge(**changes)
    if "sync_interval_hours" in changes:
        engine = state.context.engine(state.scope)
        if engine.periodic_running:
            engine.restart_periodic_sync()

    console.print(f"[green]Settings updated[/green] ({state.scope.value})")
    _print_policy(policy)
    console.print(f"  Subscriptions:   {len(policy.subscriptions)}")


@sync.command("now")
@click.option("--dry-run", is_flag=True, help="Preview changes without applying them")
@pass_state
def sync_now(state, dry_run):
    """Run one sync cycle"""
    report = state.context.engine(state.scope).sync(dry_run=dry_run)

    heading = "Sync Preview (Dry Run)" if dry_run else "Sync Complete"
    console.print(f"\n[bold]{heading} ({state.scope.value})[/bold]")
    console.print(f"  Started:    {report.started_at}")
    console.print(f"  Finished:   {report.finished_at}")
    console.print(f"  Discovered: {report.total_discovered} skills")
    console.print(f"  Installed:  {report.installed}")
    console.print(f"  Updated:    {report.updated}")
    console.print(f"  Removed:    {report.removed}")
    console.print(f"  Skipped:    {report.skipped}")
    console.print(f"  Errors:     {report.errors}")

    if not report.actions:
        console.print("\nNo actions needed, everything is in sync.")
        return

    console.print(render.sync_report_table(report))
    if dry_run and any(a.type in (ACTION_INSTALL, ACTION_UPDATE, ACTION_REMOVE) for a in report.actions):
        console.print("[dim]This was a dry run. Run `skillsync sync now` to apply changes.[/dim]")


@sync.command("status")
@click.option("--all", "all_scopes", is_flag=True, help="Show global and project scopes")
@pass_state
def sync_status(state, all_scopes):
    """Show sync status, managed and manual packages"""
    for scope in _scopes(state, all_scopes):
        engine = state.context.engine(scope)
        status = engine.get_status()
        lock = engine.lock_store.read()
        installed = engine.registry.list_skills()
        manual = [s for s in installed if not lock.is_managed(s.name)]

        console.print(f"\n[bold]SkillSync Status ({scope.value})[/bold]")
        console.print(f"  Enabled:       {status.enabled}")
        console.print(f"  Syncing:       {'Yes (in progress)' if status.syncing else 'No'}")
        manual_only = " (manual only)" if status.interval_hours == 0 else ""
        console.print(f"  Sync Interval: {status.interval_hours}h{manual_only}")
        console.print(f"  Last Sync:     {status.last_sync_run or 'Never'}")
        console.print(f"  Sync Count:    {status.sync_count}")
        console.print(f"  Next Sync:     {status.next_sync_in or 'N/A'}")
        console.print(f"  Managed:       {status.managed_skills}")
        console.print(f"  Manual:        {len(manual)}")
        console.print(f"  Total:         {len(installed)}")
        console.print(f"  Subscriptions: {status.subscriptions}")

        if lock.skills:
            table = Table(title="Managed Skills", show_header=True, header_style="bold")
            for column in ("Skill", "Risk", "Synced", "Source"):
                table.add_column(column)
            for name, locked in sorted(lock.skills.items()):
                table.add_row(
                    name,
                    render.risk_label(locked.risk_level),
                    locked.last_synced.split("T")[0],
                    escape(sanitize_url(locked.source_url)),
                )
            console.print(table)

        if manual:
            console.print("Manual skills (not sync-managed):")
            for skill in manual:
                console.print(f"  - {skill.name} ({skill.risk_level})")


@sync.command("watch")
@click.option("--now", "run_now", is_flag=True, help="Run one sync before waiting for the timer")
@pass_state
def sync_watch(state, run_now):
    """Keep the registry watched and run periodic syncs until interrupted"""
    state.context.watch = True
    engine = state.context.engine(state.scope)
    if run_now:
        report = engine.sync()
        console.print(
            f"Initial sync: {report.installed} installed, {report.updated} updated, "
            f"{report.removed} removed, {report.errors} errors"
        )
    if not engine.start_periodic_sync():
        _fail("Periodic sync is disabled. Set an interval with `skillsync sync set --interval <hours>`.")

    console.print(f"[green]Watching {state.scope.value} scope[/green] (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\nStopping...")


def main():
    cli()


if __name__ == "__main__":
    main()
