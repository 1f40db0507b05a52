"""Command-line interface for poking at the configured sources."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import get_settings
from .errors import BibSourcesError
from .identifiers import classify
from .logging import configure_logging
from .manager import PluginManager
from .models import Paper, UnifiedQuery

console = Console()
app = typer.Typer(help="Search and resolve papers across bibliographic sources.")

T = TypeVar("T")


def _build_manager() -> PluginManager:
    settings = get_settings()
    configure_logging(settings.log_level, json=settings.log_json)
    return PluginManager.from_settings(settings)


def _run(operation: Callable[[PluginManager], Awaitable[T]]) -> T:
    """Run ``operation`` against an initialized manager."""

    async def runner() -> T:
        async with _build_manager() as manager:
            return await operation(manager)

    try:
        return asyncio.run(runner())
    except BibSourcesError as exc:
        console.print(f"[red]{exc}")
        raise typer.Exit(1) from exc


def _papers_table(papers: List[Paper], title: Optional[str] = None) -> Table:
    table = Table(title=title, show_edge=False, header_style="bold cyan")
    table.add_column("Year", justify="right")
    table.add_column("Title")
    table.add_column("Authors")
    table.add_column("Source")
    table.add_column("ID")
    for paper in papers:
        authors = ", ".join(paper.authors[:3]) + (" et al." if len(paper.authors) > 3 else "")
        table.add_row(str(paper.year or ""), paper.title, authors, paper.source, paper.source_id)
    return table


@app.command()
def plugins() -> None:
    """List registered plugins and their capabilities."""

    async def describe(manager: PluginManager) -> Any:
        return manager.get_plugin_info()

    infos = _run(describe)
    table = Table(show_edge=False, header_style="bold cyan")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Active")
    table.add_column("Enabled")
    table.add_column("Auth")
    table.add_column("Capabilities")
    for info in infos:
        capabilities = ", ".join(name for name, on in info["capabilities"].items() if on)
        table.add_row(
            f"{info['icon']} {info['id']}",
            info["name"],
            "[green]yes" if info["active"] else "",
            "yes" if info["enabled"] else "[red]no",
            info["auth"]["type"] if info["auth"]["required"] else "-",
            capabilities,
        )
    console.print(table)


@app.command()
def search(
    query: List[str] = typer.Argument(None, help="Query in the source's native syntax"),
    title: Optional[str] = typer.Option(None, "--title", help="Title phrase"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Author name"),
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Publication year"),
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Plugin id to search"),
    federated: bool = typer.Option(False, "--federated", "-f", help="Search every enabled plugin"),
    limit: int = typer.Option(10, "--limit", "-n", min=1, max=200),
    sort: str = typer.Option("date", "--sort", help="date | citations | relevance"),
) -> None:
    """Search the active plugin (or every plugin with --federated)."""

    raw = " ".join(query or []).strip() or None
    if not any((raw, title, author, year)):
        console.print("[red]Please provide a query or at least one of --title/--author/--year.")
        raise typer.Exit(1)
    unified = UnifiedQuery(raw=raw, title=title, author=author, year=year, limit=limit, sort=sort)

    if federated:
        outcome = _run(lambda manager: manager.federated_search(unified))
        for plugin_id, result in outcome.results.items():
            console.print(_papers_table(result.papers, title=f"{plugin_id}: {result.total_results} results"))
        for plugin_id, error in outcome.errors.items():
            console.print(f"[red]{plugin_id} failed: {error}")
        return

    async def single(manager: PluginManager) -> Any:
        if source:
            manager.set_active(source)
        return await manager.search(unified)

    result = _run(single)
    console.print(_papers_table(result.papers, title=f"{result.total_results} results"))


@app.command()
def lookup(identifier: str = typer.Argument(..., help="DOI, arXiv id, bibcode or INSPIRE record id")) -> None:
    """Resolve an identifier through the enabled plugins."""

    report = _run(lambda manager: manager.lookup_with_report(identifier))
    for attempt in report.attempts:
        status = "error" if attempt.error else ("hit" if attempt.value else "miss")
        console.print(f"[dim]{attempt.plugin_id}: {status}{f' ({attempt.error})' if attempt.error else ''}")

    paper = report.paper
    if paper is None:
        console.print(f"[yellow]No plugin resolved {identifier} ({report.identifier_type.value}).")
        raise typer.Exit(1)

    lines = [
        f"[bold]{paper.title}[/]",
        ", ".join(paper.authors),
        " ".join(part for part in (str(paper.year or ""), paper.journal or "") if part),
        "",
    ]
    for name in ("doi", "arxiv_id", "bibcode", "inspire_id", "url"):
        value = getattr(paper, name)
        if value:
            lines.append(f"{name}: {value}")
    console.print(Panel("\n".join(lines), title=f"{paper.source}:{paper.source_id}"))


@app.command("classify")
def classify_command(identifier: str = typer.Argument(..., help="Identifier to classify")) -> None:
    """Show how an identifier will be dispatched."""
    console.print(classify(identifier).value)


@app.command()
def pdf(identifier: str = typer.Argument(..., help="Identifier of the paper")) -> None:
    """List PDF sources for a paper, most preferred first."""

    async def find(manager: PluginManager) -> Any:
        paper = await manager.lookup(identifier)
        if paper is None:
            return None
        return await manager.get_pdf_sources(paper)

    sources = _run(find)
    if sources is None:
        console.print(f"[yellow]No plugin resolved {identifier}.")
        raise typer.Exit(1)
    if not sources:
        console.print("[yellow]No PDF sources found.")
        return

    table = Table(show_edge=False, header_style="bold cyan")
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("Label")
    table.add_column("Auth")
    table.add_column("URL")
    for source in sources:
        table.add_row(
            str(source.priority),
            source.type.value,
            source.label,
            "required" if source.requires_auth else "",
            source.url,
        )
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
