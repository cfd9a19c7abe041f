"""
Main CLI entry point for chunkvault.
"""

import json
import logging
from pathlib import Path

import click

from chunkvault.core import ChunkVaultError, Config
from chunkvault.core.contracts import StoreStats
from chunkvault.ingestion import ingest_directory, ingest_file
from chunkvault.restore import Reconstructor
from chunkvault.storage import ChunkStore


def build_config(root, config_path, codec) -> Config:
    """Config from an optional JSON file, with command-line overrides."""
    overrides = {"storage_root": root, "codec": codec}
    if config_path:
        return Config.from_json(Path(config_path), **overrides)
    return Config(**{k: v for k, v in overrides.items() if v is not None}).validate()


def default_filename(path: Path) -> str:
    """Name a single-file argument by its path relative to the working directory."""
    try:
        return path.resolve().relative_to(Path.cwd().resolve()).as_posix()
    except ValueError:
        return path.name


def open_store(ctx: click.Context, reset: bool = False) -> ChunkStore:
    try:
        return ChunkStore.open(ctx.obj["config"], reset=reset)
    except ChunkVaultError as e:
        raise click.ClickException(str(e))


def format_stats(stats: StoreStats) -> dict:
    return {
        "files": stats.files,
        "unique_chunks": stats.unique_chunks,
        "manifest_rows": stats.manifest_rows,
        "logical_bytes": stats.logical_bytes,
        "unique_bytes": stats.unique_bytes,
        "stored_bytes": stats.stored_bytes,
        "dedup_ratio": round(stats.dedup_ratio, 3),
        "compression_ratio": round(stats.compression_ratio, 3),
    }


@click.group()
@click.option("--root", type=click.Path(file_okay=False), help="Storage root directory")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="JSON config file")
@click.option("--codec", type=click.Choice(["zstd", "identity"]), default=None, help="Chunk codec")
@click.option("--verbose", "-v", is_flag=True, help="Log per-chunk details")
@click.pass_context
def cli(ctx, root, config_path, codec, verbose):
    """chunkvault - deduplicating, compressed file storage."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = build_config(root, config_path, codec)
    except (ValueError, TypeError) as e:
        raise click.BadParameter(str(e), param_hint="--config")


@cli.command()
@click.option("--reset", is_flag=True, help="Delete all stored chunks and manifests first")
@click.pass_context
def init(ctx, reset):
    """Create (or clear and recreate) the storage root."""
    store = open_store(ctx, reset=reset)
    click.echo(f"Storage ready at {store.root}")


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--workers", default=1, type=int, help="Files ingested in parallel")
@click.pass_context
def ingest(ctx, paths, workers):
    """
    Ingest files or directories.

    Files inside the working directory are named by their relative path,
    other files by their base name; directory contents are named relative
    to the directory. A name that is already stored is rejected.
    """
    store = open_store(ctx)

    results = []
    try:
        for path in map(Path, paths):
            if path.is_dir():
                results.extend(ingest_directory(store, path, workers=workers))
            else:
                results.append(ingest_file(store, path, filename=default_filename(path)))
    except ChunkVaultError as e:
        raise click.ClickException(str(e))

    for result in results:
        click.echo(
            f"{result.filename}: {result.chunk_count} chunks "
            f"({result.new_chunks} new, {result.deduplicated_chunks} deduplicated), "
            f"{result.total_bytes} bytes"
        )
    click.echo(f"Ingested {len(results)} file(s)")


@cli.command()
@click.argument("filenames", nargs=-1, required=True)
@click.option("--output", "-o", required=True, type=click.Path(file_okay=False))
@click.option("--atomic", is_flag=True, help="Never leave a partially written file")
@click.pass_context
def rebuild(ctx, filenames, output, atomic):
    """Rebuild files from their chunks."""
    store = open_store(ctx)
    reconstructor = Reconstructor(store, output, atomic=atomic)

    failed = 0
    for filename in filenames:
        try:
            path = reconstructor.rebuild(filename)
            click.echo(f"Rebuilt {filename} -> {path}")
        except ChunkVaultError as e:
            failed += 1
            click.echo(f"Failed to rebuild {filename}: {e}", err=True)

    if failed:
        raise click.ClickException(f"{failed} of {len(filenames)} file(s) could not be rebuilt")


@cli.command("ls")
@click.argument("filename", required=False)
@click.pass_context
def list_command(ctx, filename):
    """List stored files, or the manifest of one file."""
    store = open_store(ctx)

    if filename is None:
        incomplete = set(store.manifest.incomplete_files())
        for name in store.manifest.list_files():
            click.echo(f"{name}  (incomplete)" if name in incomplete else name)
        return

    entries = store.manifest.list_chunks(filename)
    if not entries:
        raise click.ClickException(f"No chunks found for {filename}")
    for entry in entries:
        click.echo(f"{entry.sequence_number:>6}  {entry.chunk_hash}")


@cli.command()
@click.option("--format", "output_format", default="text", type=click.Choice(["text", "json"]))
@click.pass_context
def stats(ctx, output_format):
    """Show deduplication and compression statistics."""
    store = open_store(ctx)
    report = format_stats(store.stats())

    if output_format == "json":
        click.echo(json.dumps(report, indent=2))
    else:
        for key, value in report.items():
            click.echo(f"{key}: {value}")


@cli.command()
@click.pass_context
def verify(ctx):
    """Check store invariants and report unindexed objects."""
    store = open_store(ctx)
    errors = store.validate_invariants()
    errors.extend(
        f"File {name}: manifest incomplete, ingestion did not finish"
        for name in store.manifest.incomplete_files()
    )
    orphans = store.find_orphans()

    for error in errors:
        click.echo(error, err=True)
    for orphan in orphans:
        click.echo(f"Unreferenced object: {orphan}")

    if errors:
        raise click.ClickException(f"{len(errors)} invariant violation(s)")
    click.echo("Store is consistent")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
