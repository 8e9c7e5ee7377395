"""
Command-line interface for the Code Graph Engine.

Provides commands for initializing and indexing a project and for
querying its graph.
"""

import json
import sys
from pathlib import Path

import click

from codegraph.core.config import Config
from codegraph.core.exceptions import CodeGraphError
from codegraph.utils.logging_config import setup_logging


@click.group()
@click.version_option(version="1.0.0")
@click.option(
    "--root", "-r",
    type=click.Path(file_okay=False),
    default=".",
    help="Project root directory (default: current directory)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output"
)
@click.option(
    "--log-file",
    type=click.Path(),
    help="Path to log file"
)
@click.pass_context
def cli(ctx, root, verbose, log_file):
    """
    Code Graph Engine

    Build a persistent graph of a project's symbols and relationships
    and query callers, callees, impact and task context.
    """
    ctx.ensure_object(dict)
    ctx.obj["root"] = root
    ctx.obj["verbose"] = verbose

    log_level = "DEBUG" if verbose else "WARNING"
    setup_logging(level=log_level, log_file=Path(log_file) if log_file else None)
    Config.load_from_env()


def _fail(ctx, error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    if ctx.obj.get("verbose"):
        import traceback
        traceback.print_exc()
    sys.exit(1)


def _open_engine(ctx):
    from codegraph.engine import CodeGraphEngine

    try:
        return CodeGraphEngine.open(ctx.obj["root"])
    except CodeGraphError as e:
        _fail(ctx, e)


def _find_symbol(ctx, engine, name: str):
    """Resolve a symbol id, qualified name or short name to one symbol."""
    symbol = engine.get_symbol(name)
    if symbol is not None:
        return symbol

    matches = engine.find_symbols(qualified_pattern=name, limit=20)
    if not matches:
        matches = engine.find_symbols(name_pattern=name, limit=20)
    if len(matches) == 1:
        return matches[0]

    if not matches:
        click.echo(f"No symbol named '{name}'", err=True)
    else:
        click.echo(f"'{name}' is ambiguous, use a qualified name or id:", err=True)
        for match in matches:
            click.echo(f"  {match.id}  {match.qualified_name} ({match.file_path})", err=True)
    sys.exit(1)


def _echo_report(report: dict) -> None:
    click.echo("-" * 40)
    for key, value in report.items():
        if isinstance(value, dict):
            click.echo(f"  {key}:")
            for sub_key, sub_value in value.items():
                click.echo(f"    {sub_key}: {sub_value}")
        else:
            click.echo(f"  {key}: {value}")


@cli.command()
@click.pass_context
def init(ctx):
    """
    Initialize the code graph for a project.

    Creates the data directory with the database and a default
    configuration file.
    """
    from codegraph.engine import CodeGraphEngine

    try:
        with CodeGraphEngine.init(ctx.obj["root"]) as engine:
            click.echo(f"Initialized code graph in {engine.data_dir}")
    except CodeGraphError as e:
        _fail(ctx, e)


@cli.command()
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Rebuild the graph from scratch"
)
@click.pass_context
def index(ctx, force):
    """Index every source file of the project."""
    engine = _open_engine(ctx)
    try:
        with engine:
            report = engine.index_all(force=force)
        click.echo("Index complete:")
        _echo_report(report.to_dict())
    except CodeGraphError as e:
        _fail(ctx, e)


@cli.command()
@click.pass_context
def sync(ctx):
    """Re-index changed files and drop deleted ones."""
    engine = _open_engine(ctx)
    try:
        with engine:
            report = engine.sync()
        click.echo("Sync complete:")
        _echo_report(report.to_dict())
    except CodeGraphError as e:
        _fail(ctx, e)


@cli.command()
@click.pass_context
def status(ctx):
    """Show graph statistics."""
    engine = _open_engine(ctx)
    with engine:
        stats = engine.stats()

    click.echo("Graph Statistics:")
    _echo_report(stats)


@cli.command()
@click.pass_context
def resolve(ctx):
    """Run a reference resolution pass."""
    engine = _open_engine(ctx)
    try:
        with engine:
            report = engine.resolve()
        click.echo("Resolution complete:")
        _echo_report(report.to_dict())
    except CodeGraphError as e:
        _fail(ctx, e)


@cli.command()
@click.argument("query")
@click.option("--limit", "-n", type=int, default=20, help="Maximum number of results")
@click.option(
    "--mode", "-m",
    type=click.Choice(["lexical", "semantic", "hybrid"]),
    default="hybrid",
    help="Search mode (default: hybrid)"
)
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.pass_context
def search(ctx, query, limit, mode, as_json):
    """Search symbols by name, docstring or meaning."""
    engine = _open_engine(ctx)
    try:
        with engine:
            hits = engine.search(query, limit=limit, mode=mode)
    except CodeGraphError as e:
        _fail(ctx, e)

    if as_json:
        click.echo(json.dumps([h.to_dict() for h in hits], indent=2))
        return

    if not hits:
        click.echo("No results")
        return
    for hit in hits:
        symbol = hit.symbol
        click.echo(
            f"{hit.score:8.3f}  {symbol.kind.value:<10} {symbol.qualified_name}  "
            f"{symbol.file_path}:{symbol.start_line}"
        )


def _echo_neighbors(title: str, neighbors) -> None:
    click.echo(title)
    click.echo("-" * 40)
    if not neighbors:
        click.echo("  (none)")
    for neighbor in neighbors:
        symbol = neighbor.symbol
        click.echo(
            f"  {neighbor.relationship.kind.value:<13} {symbol.qualified_name}  "
            f"{symbol.file_path}:{neighbor.relationship.line or symbol.start_line}"
        )


@cli.command()
@click.argument("symbol")
@click.pass_context
def callers(ctx, symbol):
    """List the callers of SYMBOL (id, qualified name or name)."""
    engine = _open_engine(ctx)
    with engine:
        target = _find_symbol(ctx, engine, symbol)
        _echo_neighbors(f"Callers of {target.qualified_name}:", engine.callers(target.id))


@cli.command()
@click.argument("symbol")
@click.pass_context
def callees(ctx, symbol):
    """List what SYMBOL (id, qualified name or name) calls."""
    engine = _open_engine(ctx)
    with engine:
        target = _find_symbol(ctx, engine, symbol)
        _echo_neighbors(f"Callees of {target.qualified_name}:", engine.callees(target.id))


@cli.command()
@click.argument("symbol")
@click.option("--depth", "-d", type=int, default=None, help="Number of hops to follow")
@click.pass_context
def impact(ctx, symbol, depth):
    """List every symbol that depends on SYMBOL, by distance."""
    engine = _open_engine(ctx)
    try:
        with engine:
            target = _find_symbol(ctx, engine, symbol)
            entries = engine.impact(target.id, max_depth=depth)
    except CodeGraphError as e:
        _fail(ctx, e)

    click.echo(f"Impact of {target.qualified_name}: {len(entries)} symbols")
    click.echo("-" * 40)
    for entry in entries:
        click.echo(
            f"  [{entry.depth}] {entry.symbol.qualified_name}  "
            f"({entry.via.value if entry.via else '-'}) {entry.symbol.file_path}"
        )


@cli.command()
@click.argument("query")
@click.option("--max-nodes", "-n", type=int, default=None, help="Maximum number of symbols")
@click.option("--no-code", is_flag=True, help="Leave out source snippets")
@click.option("--json", "as_json", is_flag=True, help="Print the context as JSON")
@click.pass_context
def context(ctx, query, max_nodes, no_code, as_json):
    """Build a task context for QUERY."""
    engine = _open_engine(ctx)
    try:
        with engine:
            task_context = engine.build_context(
                query=query,
                max_nodes=max_nodes,
                include_code=False if no_code else None,
            )
    except CodeGraphError as e:
        _fail(ctx, e)

    if as_json:
        click.echo(json.dumps(task_context.to_dict(), indent=2))
    else:
        click.echo(task_context.to_markdown())


@cli.command()
@click.option(
    "--purge",
    is_flag=True,
    help="Drop vectors produced by other models"
)
@click.option("--limit", type=int, default=10000, help="Maximum number of symbols to embed")
@click.pass_context
def embed(ctx, purge, limit):
    """Compute embeddings for symbols that lack one."""
    engine = _open_engine(ctx)
    try:
        with engine:
            report = engine.embed_symbols(limit=limit)
            if purge:
                engine.purge_embeddings(except_model=report.model)
        click.echo("Embedding complete:")
        _echo_report(report.to_dict())
    except CodeGraphError as e:
        _fail(ctx, e)


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
