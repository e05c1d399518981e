#!/usr/bin/env python3
"""
Smart Doc Tools - CLI Interface

Compress images and PDFs, extract PDF page ranges, and combine images into a PDF.

Usage:
    doctools compress photo.png --target 500KB --format webp
    doctools compress scan.pdf --target 2MB --output scan_small.pdf
    doctools split book.pdf -r 1-5:intro -r 6-20:chapter1
    doctools convert *.jpg --output album.pdf
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from PIL import Image
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    TaskProgressColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from doctools import PDFSplitter, compress_file, images_to_pdf
from doctools.compressor import DEFAULT_QUALITY, classify_file, resolve_target
from doctools.converter import DEFAULT_OUTPUT_NAME
from doctools.imaging import OutputFormat
from doctools.splitter import parse_page_range
from doctools.utils import format_size

console = Console()
err_console = Console(stderr=True)


def configure_logging(verbose: bool):
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def create_progress_bar():
    """Create a rich progress bar."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeRemainingColumn(),
        console=console,
    )


def fail(message: str, json_output: bool = False):
    """Report an error and exit with status 1."""
    if json_output:
        click.echo(json.dumps({"error": message}, indent=2))
    else:
        console.print(f"[bold red]Error: {escape(message)}[/bold red]", soft_wrap=True)
    sys.exit(1)


def run_with_progress(json_output: bool, work):
    """Run ``work(progress_callback)`` under a progress bar unless emitting JSON."""
    if json_output:
        return work(None)

    with create_progress_bar() as progress:
        task = progress.add_task("Initializing...", total=100)

        def progress_callback(stage: str, percentage: int):
            progress.update(task, description=stage, completed=percentage)

        result = work(progress_callback)
        progress.update(task, completed=100, description="Complete")
    return result


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx):
    """Smart Doc Tools - compress, split and convert documents locally."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--target", "-t",
    default="",
    help="Target file size (e.g., 500KB, 2MB, 1.5GB). Leave out for quality-based compression",
)
@click.option(
    "--quality", "-q",
    type=click.FloatRange(0.1, 1.0),
    default=DEFAULT_QUALITY,
    show_default=True,
    help="Quality used when no target is given (images only)",
)
@click.option(
    "--format", "-f", "output_format",
    type=click.Choice(list(OutputFormat.ALL) + ["jpg"], case_sensitive=False),
    help="Output image format (default: same as input)",
)
@click.option(
    "--output", "-o",
    type=click.Path(dir_okay=False),
    help="Output file path (default: input_compressed.<ext>)",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output results as JSON",
)
def compress(
    input_file: str,
    target: str,
    quality: float,
    output_format: Optional[str],
    output: Optional[str],
    verbose: bool,
    json_output: bool,
):
    """Compress an image or PDF, optionally toward a target size."""
    configure_logging(verbose)
    input_path = Path(input_file)

    try:
        file_type = classify_file(input_path)
        target_bytes = resolve_target(target, input_path.stat().st_size)
    except ValueError as e:
        fail(str(e), json_output)

    if not json_output:
        console.print(Panel(
            f"[bold blue]Smart Doc Tools[/bold blue]\n"
            f"Input: {input_path.name} ({file_type})\n"
            f"Target: {format_size(target_bytes) if target_bytes else f'quality {quality:.0%}'}",
            title="Compression Job",
        ))

    try:
        result = run_with_progress(json_output, lambda callback: compress_file(
            input_path,
            output,
            target_size=target_bytes,
            quality=quality,
            output_format=output_format,
            progress_callback=callback,
        ))
    except (ValueError, OSError) as e:
        fail(str(e), json_output)

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    table = Table(title="Compression Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Original Size", format_size(result.original_size))
    table.add_row("Compressed Size", format_size(result.compressed_size))
    table.add_row("Reduction", f"{result.compression_ratio * 100:.1f}%")
    if result.target_size:
        table.add_row("Target Size", format_size(result.target_size))
        table.add_row("Target Achieved", "Yes" if result.target_achieved else "No (closest result)")
        table.add_row("Iterations", str(result.iterations))
    if result.quality is not None:
        table.add_row("Quality", f"{result.quality:.0%}")
    if result.scale is not None:
        table.add_row("Scale", f"{result.scale:.0%}")

    console.print(table)
    console.print(f"\n[bold green]Saved to: {result.output_path}[/bold green]")


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--range", "-r", "range_texts",
    multiple=True,
    required=True,
    help="Page range START-END[:NAME], repeatable (e.g., -r 1-5:intro -r 6-10)",
)
@click.option(
    "--output-dir", "-d",
    type=click.Path(file_okay=False),
    help="Output directory (default: same as input)",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output results as JSON",
)
def split(
    input_file: str,
    range_texts: tuple,
    output_dir: Optional[str],
    verbose: bool,
    json_output: bool,
):
    """Extract page ranges from a PDF into new files."""
    configure_logging(verbose)

    try:
        ranges = [parse_page_range(text) for text in range_texts]
        splitter, files = run_with_progress(json_output, lambda callback: _extract(input_file, ranges, callback))
        output_path = splitter.save(files, output_dir)
    except (ValueError, OSError) as e:
        fail(str(e), json_output)

    if json_output:
        click.echo(json.dumps({
            "output_path": str(output_path),
            "total_pages": splitter.page_count,
            "files": [f.to_dict() for f in files],
        }, indent=2))
        return

    if len(files) == 1:
        console.print(f"[green]Successfully extracted pages {files[0].range_label}![/green]")
    else:
        console.print(f"[green]Successfully created {len(files)} PDF files![/green]")
    console.print(f"[bold green]Saved to: {output_path}[/bold green]")


def _extract(input_file: str, ranges, callback):
    splitter = PDFSplitter(input_file, progress_callback=callback)
    return splitter, splitter.extract(ranges)


@cli.command()
@click.argument("image_files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output", "-o",
    type=click.Path(dir_okay=False),
    default=DEFAULT_OUTPUT_NAME,
    show_default=True,
    help="Output PDF path",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output results as JSON",
)
def convert(image_files: tuple, output: str, verbose: bool, json_output: bool):
    """Combine images into a single PDF, one image per page."""
    configure_logging(verbose)

    try:
        result = run_with_progress(
            json_output,
            lambda callback: images_to_pdf(image_files, output, progress_callback=callback),
        )
    except (ValueError, OSError) as e:
        fail(str(e), json_output)

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    for name in result.skipped:
        console.print(f"[yellow]Skipped non-image file: {name}[/yellow]")
    console.print(f"[green]PDF created successfully with {result.pages_written} page(s)![/green]")
    console.print(f"[bold green]Saved to: {result.output_path}[/bold green]")


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output as JSON",
)
def info(input_file: str, json_output: bool):
    """Show size and basic properties of an image or PDF."""
    input_path = Path(input_file)

    try:
        file_type = classify_file(input_path)
        details = {
            "name": input_path.name,
            "type": file_type,
            "size": input_path.stat().st_size,
            "size_formatted": format_size(input_path.stat().st_size),
        }
        if file_type == "pdf":
            details["pages"] = PDFSplitter(input_path).page_count
        else:
            with Image.open(input_path) as img:
                details["width"], details["height"] = img.size
                details["mode"] = img.mode
    except (ValueError, OSError) as e:
        fail(str(e), json_output)

    if json_output:
        click.echo(json.dumps(details, indent=2))
        return

    table = Table(title=f"File Info: {input_path.name}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Type", file_type.upper())
    table.add_row("Size", details["size_formatted"])
    if file_type == "pdf":
        table.add_row("Pages", str(details["pages"]))
    else:
        table.add_row("Dimensions", f"{details['width']} x {details['height']}")
        table.add_row("Mode", details["mode"])

    console.print(table)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
