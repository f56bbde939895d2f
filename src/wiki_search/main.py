import asyncio
from typing import Annotated

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn, TimeRemainingColumn
from rich.table import Table
from typer import Argument, Exit, Option, Typer

from .config import configure_logging
from .errors import WikiSearchError
from .indexing import BatchProgress, embeddings_stats, import_markdown_folder
from .runtime import WikiSearchRuntime, build_runtime, set_runtime

app = Typer(help="Semantic search and batch embeddings for wiki pages.")
console = Console()

DbPathOption = Annotated[
    str | None,
    Option("--db-path", help="DuckDB file (default: $WIKI_SEARCH_DB_PATH or ~/.wiki_search/wiki.duckdb)."),
]


@app.callback()
def _setup(
    log_level: Annotated[
        str | None, Option("--log-level", help="Override WIKI_SEARCH_LOG_LEVEL.")
    ] = None,
) -> None:
    configure_logging(log_level)


def _summary_panel(progress: BatchProgress) -> Panel:
    lines = [
        f"Status: [bold]{progress.status}[/]",
        f"Total pages: {progress.total}",
        f"Processed: {progress.processed}",
        f"Cached (skipped): {progress.cached}",
        f"Failed: {progress.failed}",
    ]
    if progress.last_error:
        lines.append(f"Error: {escape(progress.last_error)}")
    for error in progress.errors[-10:]:
        lines.append(f"- page {error.page_id}: {escape(error.error)}")
    style = "bold green" if progress.status == "completed" else "bold red"
    return Panel(
        "\n".join(lines),
        title="Batch Embeddings",
        title_align="left",
        border_style=style,
    )


async def run_batch(
    runtime: WikiSearchRuntime,
    *,
    force_regenerate: bool = False,
    page_ids: list[int] | None = None,
) -> BatchProgress:
    job = runtime.batch_job
    snapshot = await job.start(force_regenerate=force_regenerate, page_ids=page_ids)
    pending = snapshot.total - snapshot.cached
    with Progress(
        TextColumn("[bold cyan]Embedding pages"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeRemainingColumn(),
        console=console,
        transient=True,
    ) as bar:
        task_id = bar.add_task("embed", total=pending)
        try:
            while job.is_running:
                bar.update(task_id, completed=job.progress().processed)
                await asyncio.sleep(0.2)
        except asyncio.CancelledError:
            job.stop()
            raise
        snapshot = await job.wait()
        bar.update(task_id, completed=snapshot.processed)
    return snapshot


@app.command("import-pages")
def import_pages(
    folder: Annotated[str, Argument(help="Folder of markdown files, one page per file.")],
    db_path: DbPathOption = None,
    keep_missing: Annotated[
        bool,
        Option("--keep-missing", help="Do not archive pages whose file is gone."),
    ] = False,
) -> None:
    """Load markdown files into the page store."""
    runtime = build_runtime(db_path)
    try:
        result = import_markdown_folder(
            runtime.storage, folder, archive_missing=not keep_missing
        )
    except ValueError as exc:
        console.print(f"[bold red]{escape(str(exc))}[/]")
        raise Exit(code=1)
    finally:
        runtime.close()
    console.print(
        Panel(
            f"New pages: {result.imported_pages}\n"
            f"Updated pages: {result.updated_pages}\n"
            f"Archived pages: {result.archived_pages}",
            title="Import Complete",
            title_align="left",
            border_style="bold green",
        )
    )


@app.command()
def embed(
    db_path: DbPathOption = None,
    force: Annotated[
        bool, Option("--force", help="Re-embed pages that already have embeddings.")
    ] = False,
    page_id: Annotated[
        list[int] | None,
        Option("--page-id", help="Restrict the run to these page ids (repeatable)."),
    ] = None,
) -> None:
    """Run a batch embedding pass to completion."""
    runtime = build_runtime(db_path)
    try:
        progress = asyncio.run(
            run_batch(runtime, force_regenerate=force, page_ids=page_id or None)
        )
    except WikiSearchError as exc:
        console.print(f"[bold red]Batch failed:[/] {escape(str(exc))}")
        raise Exit(code=1)
    finally:
        runtime.close()
    console.print(_summary_panel(progress))
    if progress.status != "completed":
        raise Exit(code=1)


@app.command("embed-page")
def embed_page(
    page_id: Annotated[int, Argument(help="Id of the page to (re)embed.")],
    db_path: DbPathOption = None,
) -> None:
    """Generate embeddings for a single page."""
    runtime = build_runtime(db_path)
    try:
        written = asyncio.run(runtime.embedder.generate_embeddings(page_id))
    except WikiSearchError as exc:
        console.print(f"[bold red]{escape(str(exc))}[/]")
        raise Exit(code=1)
    finally:
        runtime.close()
    console.print(f"Page {page_id}: {written} chunks embedded")


@app.command()
def search(
    query: Annotated[str, Argument(help="Free-text query.")],
    db_path: DbPathOption = None,
    limit: Annotated[int, Option("--limit", "-n", min=1)] = 10,
) -> None:
    """Search pages and print the ranked hits."""
    runtime = build_runtime(db_path)
    try:
        hits = asyncio.run(runtime.search_service.search(query, limit=limit))
    except WikiSearchError as exc:
        console.print(f"[bold red]Search unavailable:[/] {escape(str(exc))}")
        raise Exit(code=1)
    finally:
        runtime.close()

    if not hits:
        console.print("No results.")
        return
    table = Table(title=f"Results for {query!r}")
    table.add_column("Score", justify="right")
    table.add_column("Page")
    table.add_column("Slug")
    table.add_column("Snippet")
    for hit in hits:
        table.add_row(
            f"{hit.score:.3f}",
            hit.page_title,
            hit.page_slug,
            hit.snippet.replace("\n", " "),
        )
    console.print(table)


@app.command()
def stats(db_path: DbPathOption = None) -> None:
    """Show embedding coverage."""
    runtime = build_runtime(db_path)
    try:
        result = embeddings_stats(runtime.storage, runtime.storage)
    except WikiSearchError as exc:
        console.print(f"[bold red]Stats unavailable:[/] {escape(str(exc))}")
        raise Exit(code=1)
    finally:
        runtime.close()
    console.print(
        Panel(
            f"Total pages: {result.total_pages}\n"
            f"With embeddings: {result.pages_with_embeddings}\n"
            f"Without embeddings: {result.pages_without_embeddings}\n"
            f"Coverage: {result.coverage_percent}%",
            title="Embeddings Coverage",
            title_align="left",
            border_style="bold cyan",
        )
    )


@app.command()
def serve(
    host: Annotated[str, Option("--host")] = "127.0.0.1",
    port: Annotated[int, Option("--port")] = 8000,
    db_path: DbPathOption = None,
) -> None:
    """Run the HTTP API."""
    from .server import run_server

    set_runtime(build_runtime(db_path))
    run_server(host=host, port=port)
