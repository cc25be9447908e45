"""
imgmap CLI Main Entry Point.

Command-line interface for decoding disk images and mapping them to
loop devices from build scripts.
"""

from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path

import click
import humanize
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, DownloadColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from imgmap import __version__
from imgmap.core.config import ImgMapConfig, load_config
from imgmap.core.exceptions import ImgMapError
from imgmap.core.logging import setup_logging
from imgmap.core.models import ImageFormat, MappingResult
from imgmap.core.reporting import Reporter
from imgmap.image.decoder import Image, ImageDecoder
from imgmap.image.formats import detect_format
from imgmap.image.writer import write_raw_image
from imgmap.platform import is_admin, is_linux
from imgmap.platform.linux.mapper import LoopbackPartitionMapper, detach_loop_device

console = Console()
err_console = Console(stderr=True)


class ConsoleReporter(Reporter):
    """Reporter that prints to the terminal through rich."""

    def __init__(self, out: Console, quiet: bool = False) -> None:
        self.out = out
        self.quiet = quiet

    def say(self, text: str) -> None:
        if not self.quiet:
            self.out.print(f"[cyan]==> {escape(text)}[/cyan]")

    def message(self, text: str) -> None:
        if not self.quiet:
            self.out.print(f"    {escape(text)}")

    def error(self, text: str) -> None:
        self.out.print(f"[red]{escape(text)}[/red]")

    def ask(self, question: str) -> str:
        return click.prompt(question)


def get_reporter(ctx: click.Context) -> ConsoleReporter:
    """Get or create the reporter for this invocation."""
    if "reporter" not in ctx.obj:
        ctx.obj["reporter"] = ConsoleReporter(err_console, quiet=ctx.obj.get("quiet", False))
    return ctx.obj["reporter"]


def require_linux(feature: str) -> None:
    """Ensure we are on Linux, where loop devices exist."""
    if not is_linux():
        err_console.print(f"[red]{feature} is only available on linux.[/red]")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="imgmap")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--verbose", "-v", is_flag=True, help="Log every external command")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    json_output: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """
    imgmap - Disk image preparation for build pipelines.

    Decodes raw, zip and xz disk images and attaches them as loop devices.
    """
    ctx.ensure_object(dict)

    ctx.obj["config"] = load_config(config)

    if verbose:
        ctx.obj["config"].logging.level = "DEBUG"
    setup_logging(ctx.obj["config"].logging)

    ctx.obj["json_output"] = json_output
    ctx.obj["quiet"] = quiet


def _write_with_progress(image: Image, destination: Path, chunk_size: int, quiet: bool) -> int:
    if quiet:
        return write_raw_image(image, destination, chunk_size)

    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        DownloadColumn(binary_units=True),
        console=err_console,
        transient=True,
    ) as progress:
        task = progress.add_task(
            f"Decoding {Path(image.name).name}",
            total=image.size_estimate or None,
        )
        return write_raw_image(
            image,
            destination,
            chunk_size,
            progress=lambda done, _total: progress.update(task, completed=done),
        )


@cli.command("inspect")
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def inspect_image(ctx: click.Context, image: Path) -> None:
    """Show the container format and decoded size of IMAGE."""
    config: ImgMapConfig = ctx.obj["config"]
    decoder = ImageDecoder(reporter=get_reporter(ctx), config=config.decoder)

    with decoder.open(image) as img:
        info = {
            "path": str(image),
            "format": img.format.value,
            "size_estimate": img.size_estimate,
        }

    if ctx.obj.get("json_output"):
        click.echo(json.dumps(info, indent=2))
        return

    size = (
        humanize.naturalsize(info["size_estimate"], binary=True)
        if info["size_estimate"]
        else "unknown"
    )
    console.print(
        Panel(
            f"[cyan]Format:[/cyan] {info['format']}\n[cyan]Decoded size:[/cyan] {size}",
            title=escape(str(image)),
        )
    )


@cli.command("decode")
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def decode(ctx: click.Context, image: Path, output: Path) -> None:
    """Decode IMAGE into the raw disk image OUTPUT."""
    config: ImgMapConfig = ctx.obj["config"]
    decoder = ImageDecoder(reporter=get_reporter(ctx), config=config.decoder)

    with decoder.open(image) as img:
        written = _write_with_progress(
            img, output, config.decoder.chunk_size_bytes, ctx.obj.get("quiet", False)
        )

    if ctx.obj.get("json_output"):
        click.echo(json.dumps({"output": str(output), "bytes_written": written}, indent=2))
        return

    console.print(
        f"[green]Wrote {humanize.naturalsize(written, binary=True)} to {escape(str(output))}[/green]"
    )


def _show_mapping(ctx: click.Context, result: MappingResult) -> None:
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    table = Table(title=f"Mapped {result.loop_device}")
    table.add_column("#", style="white")
    table.add_column("Device", style="cyan")
    table.add_column("Kind", style="yellow")

    partitions = set(result.partitions)
    for index, path in enumerate(result, start=1):
        table.add_row(str(index), path, "partition" if path in partitions else "volume")

    console.print(table)


@cli.command("map")
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--hold", is_flag=True, help="Stay attached until a key is pressed, then detach")
@click.pass_context
def map_image(ctx: click.Context, image: Path, hold: bool) -> None:
    """Attach IMAGE as a loop device and list its partitions and volumes."""
    require_linux("Mapping")
    if not is_admin():
        err_console.print("[yellow]Not running as root; losetup will probably fail.[/yellow]")

    config: ImgMapConfig = ctx.obj["config"]
    reporter = get_reporter(ctx)
    raw_path = image
    temp_path: Path | None = None

    try:
        if detect_format(image) is not ImageFormat.RAW:
            fd, name = tempfile.mkstemp(prefix="imgmap-", suffix=".img", dir=config.temp_directory)
            os.close(fd)
            temp_path = raw_path = Path(name)
            decoder = ImageDecoder(reporter=reporter, config=config.decoder)
            with decoder.open(image) as img:
                _write_with_progress(
                    img, temp_path, config.decoder.chunk_size_bytes, ctx.obj.get("quiet", False)
                )

        mapper = LoopbackPartitionMapper(reporter=reporter, config=config.mapper)
        result = mapper.attach(raw_path)
        _show_mapping(ctx, result)

        if hold:
            with mapper:
                click.pause("Press any key to detach...", err=True)
    finally:
        # The loop device keeps its backing file open, so the name can go now
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)


@cli.command("detach")
@click.argument("path")
@click.pass_context
def detach(ctx: click.Context, path: str) -> None:
    """Detach the loop device behind PATH (a loop device or one of its partitions)."""
    require_linux("Detaching")
    if not detach_loop_device(path, reporter=get_reporter(ctx)):
        sys.exit(1)


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except (ImgMapError, OSError) as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
