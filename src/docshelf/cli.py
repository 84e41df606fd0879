"""Command line interface for DocShelf."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from docshelf.config import AppConfig
from docshelf.errors import DocShelfError
from docshelf.pipeline import (
    Notice,
    NoticeLevel,
    Upload,
    delete_document,
    enrich_document,
    ingest_many,
    summarize_document,
)
from docshelf.services import Services, build_services
from docshelf.sync.reader import SyncReader


console = Console()
app = typer.Typer(help="DocShelf - shared document library with AI enrichment")

_LEVEL_STYLES = {
    NoticeLevel.INFO: "green",
    NoticeLevel.WARNING: "yellow",
    NoticeLevel.ERROR: "red",
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load_config(data_dir: Optional[Path]) -> AppConfig:
    config = AppConfig.from_env()
    if data_dir is not None:
        config.data_dir = data_dir
    return config


def _run(config: AppConfig, action: Callable[[Services], Awaitable[Any]]) -> Any:
    async def _main() -> Any:
        services = build_services(config, Path.cwd())
        try:
            return await action(services)
        finally:
            await services.aclose()

    return asyncio.run(_main())


def _print_notices(notices: List[Notice]) -> None:
    for notice in notices:
        style = _LEVEL_STYLES[notice.level]
        console.print(f"[{style}]{notice.title}:[/{style}] {notice.message}")


@app.command()
def ingest(
    files: List[Path] = typer.Argument(
        ..., help="Files to add to the library.", exists=True, dir_okay=False, resolve_path=True
    ),
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding the local databases"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Extract, enrich, store and share one or more documents."""
    _setup_logging(verbose)
    config = _load_config(data_dir)
    uploads = [Upload(name=path.name, data=path.read_bytes()) for path in files]

    results = _run(config, lambda services: ingest_many(uploads, services))

    failed = 0
    for upload, result in zip(uploads, results):
        if isinstance(result, BaseException):
            console.print(f"[red]{upload.name}: {result}[/red]")
            failed += 1
            continue
        _print_notices(result.notices)
        if result.document is None:
            failed += 1
        else:
            console.print(f"Stored [bold]{result.document.name}[/bold] ({result.document.id})")

    if failed:
        raise typer.Exit(code=1)


@app.command("list")
def list_documents(
    pages: int = typer.Option(1, "--pages", min=1, help="Number of pages to load"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Filter loaded documents"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding the local databases"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show the newest documents of the shared library."""
    _setup_logging(verbose)
    config = _load_config(data_dir)

    async def _load(services: Services) -> SyncReader:
        reader = SyncReader(services.collection, page_size=services.config.page_size)
        await reader.start()
        for _ in range(pages - 1):
            if not reader.has_more:
                break
            await reader.load_more()
        reader.stop()
        return reader

    reader = _run(config, _load)
    documents = reader.library.search(search)
    if not documents:
        console.print("[yellow]No documents found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Author")
    table.add_column("Source")
    table.add_column("Edition")
    table.add_column("Uploaded")

    for doc in documents:
        table.add_row(doc.id, doc.name, doc.author or "", doc.source, doc.edition or "", doc.uploaded_at)

    console.print(table)
    if reader.has_more:
        console.print(f"More documents available; use --pages {pages + 1} to load another page.")


@app.command()
def delete(
    doc_id: str = typer.Argument(..., help="Document id"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding the local databases"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Delete a document everywhere it is stored."""
    _setup_logging(verbose)
    config = _load_config(data_dir)
    result = _run(config, lambda services: delete_document(doc_id, services))
    _print_notices(result.notices)
    if not result.deleted:
        raise typer.Exit(code=1)


@app.command()
def summarize(
    doc_id: str = typer.Argument(..., help="Document id"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding the local databases"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Generate and store a summary for a document."""
    _setup_logging(verbose)
    config = _load_config(data_dir)
    try:
        result = _run(config, lambda services: summarize_document(doc_id, services))
    except DocShelfError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    _print_notices(result.notices)
    if result.summary is None:
        raise typer.Exit(code=1)
    console.print(result.summary)


@app.command()
def enrich(
    doc_id: str = typer.Argument(..., help="Document id"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding the local databases"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Identify details and generate a cover image for a stored document."""
    _setup_logging(verbose)
    config = _load_config(data_dir)
    try:
        result = _run(config, lambda services: enrich_document(doc_id, services))
    except DocShelfError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    _print_notices(result.notices)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding the local databases"),
) -> None:
    """Start the web API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from docshelf.web.app import app as web_app, configure

    config = _load_config(data_dir)
    configure(config)
    console.print(f"Starting web interface on http://{host}:{port} (data: {config.data_dir})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
