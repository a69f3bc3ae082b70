"""branchdex CLI application with Typer."""

import logging
from pathlib import Path
from typing import Annotated, cast

import typer

from branchdex import __version__
from branchdex.bootstrap import bootstrap_application
from branchdex.config import get_settings, set_settings
from branchdex.index.errors import IndexerError, SearchIndexError, SnapshotError
from branchdex.index.models import SearchFilters, SearchMode
from branchdex.utils.cli_output import json_response

app = typer.Typer(
    name="branchdex",
    help="Multi-branch static search indexes for Git repositories",
    add_completion=True,
    no_args_is_help=True,
)
index_app = typer.Typer(help="Search index generation and inspection")
app.add_typer(index_app, name="index")

SEARCH_MODES: tuple[str, ...] = ("search-index", "github-api")


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"branchdex version {__version__}")
        raise typer.Exit()


def _fail(message: str, code: int = 1) -> typer.Exit:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    return typer.Exit(code=code)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging"),
    ] = False,
    enable: Annotated[
        bool,
        typer.Option("--enable", help="Force the search index feature on for this run"),
    ] = False,
) -> None:
    """branchdex - Multi-branch static search indexes for Git repositories."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    settings = get_settings()
    if enable:
        settings.search_index_enabled = True
    set_settings(settings)


@index_app.command("build")
def index_build(
    branch: Annotated[
        list[str] | None,
        typer.Option("--branch", "-b", help="Branch to index (repeatable)"),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option("--output-dir", "-o", help="Override artifact output directory"),
    ] = None,
    repo_path: Annotated[
        Path | None,
        typer.Option("--repo-path", help="Snapshot branches from this local checkout"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Build even when the generation gate says skip"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output build report as JSON"),
    ] = False,
) -> None:
    """Build per-branch search artifacts and the manifest."""
    container = bootstrap_application()
    settings = container.settings

    if not force:
        reason = container.generation_gate.skip_reason()
        if reason is not None:
            typer.secho(f"Skipping index generation: {reason}", fg=typer.colors.YELLOW)
            raise typer.Exit()

    if repo_path is None and settings.repo_path is None and not settings.has_repository():
        raise _fail("Set GITHUB_REPO_OWNER and GITHUB_REPO_NAME, or pass --repo-path")

    branches = list(dict.fromkeys(b.strip() for b in branch or [] if b.strip()))
    branches = branches or settings.get_index_branches()
    builder = container.create_builder(output_dir=output_dir, repo_path=repo_path)

    if not json_output:
        typer.secho(
            f"Building search index for {len(branches)} branch(es)...", fg=typer.colors.BLUE
        )

    try:
        report = builder.build(branches, show_progress=not json_output)
    except (SnapshotError, IndexerError) as exc:
        raise _fail(str(exc), code=2) from exc

    if json_output:
        typer.echo(
            json_response(
                "index_build",
                1,
                manifest_path=str(report.manifest_path),
                indexed=report.indexed,
                failed=report.failed,
                documents={
                    name: stats.model_dump() for name, stats in report.extraction.items()
                },
                elapsed_seconds=round(report.elapsed_seconds, 3),
            )
        )
    elif report.indexed:
        typer.secho(f"Manifest written to {report.manifest_path}", fg=typer.colors.GREEN)

    if not report.indexed:
        raise _fail("No branches were indexed")


@index_app.command("status")
def index_status(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output status as JSON"),
    ] = False,
) -> None:
    """Show whether the index is enabled, ready, and which branches it covers."""
    container = bootstrap_application()
    status = container.search_service.initialize()

    if json_output:
        typer.echo(
            json_response(
                "index_status",
                1,
                manifest_location=container.manifest_client.location,
                cache=container.cache.stats(),
                **status.model_dump(mode="json"),
            )
        )
        return

    if not status.enabled:
        typer.secho("Search index is disabled", fg=typer.colors.YELLOW)
        return
    if status.error:
        typer.secho(f"[{status.error_code}] {status.error}", fg=typer.colors.RED)
        return

    typer.secho(
        f"Search index ready ({len(status.indexed_branches)} branches)", fg=typer.colors.GREEN
    )
    for name in status.indexed_branches:
        typer.echo(f"  - {name}")


@index_app.command("manifest")
def index_manifest() -> None:
    """Print the current manifest."""
    container = bootstrap_application()
    try:
        manifest = container.manifest_client.fetch_manifest(force=True)
    except SearchIndexError as exc:
        raise _fail(f"[{exc.code.value}] {exc}") from exc

    typer.echo(json_response("manifest", 1, manifest=manifest.to_wire()))


@app.command("search")
def search(
    keyword: Annotated[str, typer.Argument(help="Keyword to search for")],
    branch: Annotated[
        list[str] | None,
        typer.Option("--branch", "-b", help="Branch to search (repeatable)"),
    ] = None,
    path_prefix: Annotated[
        str | None,
        typer.Option("--path-prefix", "-p", help="Only return paths under this prefix"),
    ] = None,
    ext: Annotated[
        list[str] | None,
        typer.Option("--ext", "-e", help="Only return files with this extension (repeatable)"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum results to return", min=1),
    ] = 100,
    mode: Annotated[
        str,
        typer.Option("--mode", help="Preferred mode: search-index or github-api"),
    ] = "search-index",
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results as JSON"),
    ] = False,
) -> None:
    """Search file paths and contents across branches."""
    mode_normalized = mode.strip().lower()
    if mode_normalized not in SEARCH_MODES:
        raise _fail(f"Invalid mode. Choose from {', '.join(SEARCH_MODES)}.", code=2)

    container = bootstrap_application()
    filters = SearchFilters(
        keyword=keyword,
        branches=branch or [],
        path_prefix=path_prefix,
        extensions=ext or [],
        limit=limit,
    )

    container.search_service.initialize()
    try:
        execution = container.search_service.search(
            filters, preferred_mode=cast(SearchMode, mode_normalized)
        )
    except SearchIndexError as exc:
        raise _fail(f"[{exc.code.value}] {exc}") from exc

    if json_output:
        typer.echo(json_response("search_results", 1, **execution.model_dump(mode="json")))
        return

    if execution.fallback_reason:
        typer.secho(
            f"Using live search ({execution.fallback_reason})", fg=typer.colors.YELLOW, err=True
        )
    if not execution.items:
        typer.secho("No results found", fg=typer.colors.YELLOW)
        return

    typer.secho(
        f"Found {len(execution.items)} results for '{filters.keyword}' "
        f"via {execution.mode} in {execution.took:.0f} ms:",
        fg=typer.colors.BLUE,
    )
    for i, item in enumerate(execution.items, 1):
        typer.echo(f"\n{i}. {item.branch}:{item.path} (score: {item.score:.2f})")
        if item.snippet:
            typer.echo(f"   {item.snippet}")
        if item.html_url:
            typer.echo(f"   {item.html_url}")


if __name__ == "__main__":
    app()
