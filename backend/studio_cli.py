#!/usr/bin/env python3
"""
Image Studio CLI - run the server or generate images from the terminal.

Usage:
    imagestudio serve                                 # Run the API server
    imagestudio models                                # List available models
    imagestudio styles                                # List style presets
    imagestudio generate "a sunset" -m MODEL -a 16:9  # Generate and follow progress
    imagestudio list                                  # List your generations
    imagestudio delete GENERATION_ID                  # Delete a generation
"""

import asyncio
import logging
import sys
from pathlib import Path

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from app.config import get_config, reload_config
from app.styles import ARTISTIC_STYLES, ASPECT_RATIOS
from providers import AVAILABLE_MODELS
from studio import ConsoleNotifier, InvalidSubmission, StudioSession

console = Console()


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@click.group()
@click.version_option(version="0.1.0", prog_name="imagestudio")
@click.option("--env", "-e", "env_file", type=click.Path(), help="Path to .env file")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(env_file: str | None, verbose: bool):
    """Image Studio - multi-model image generation"""
    if env_file:
        reload_config(env_file)
    configure_logging(verbose)


@cli.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", "-p", type=int, default=None, help="Port to run on")
def serve(host: str | None, port: int | None):
    """Run the API server."""
    import uvicorn

    config = get_config()
    uvicorn.run("app.main:app", host=host or config.host, port=port or config.port)


@cli.command()
def models():
    """List image models."""
    table = Table(title="Models")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Provider", style="dim")

    for model in AVAILABLE_MODELS:
        table.add_row(model.id, model.name, model.provider)

    console.print(table)


@cli.command()
def styles():
    """List style presets."""
    for style in ARTISTIC_STYLES:
        console.print(f"  • [bold]{style.id}[/bold] ({style.name})")


@cli.command()
@click.argument("prompt")
@click.option("--model", "-m", "model_ids", multiple=True, required=True,
              help="Model id (repeatable)")
@click.option("--aspect-ratio", "-a", "aspect_ratios", multiple=True,
              type=click.Choice(ASPECT_RATIOS), default=("1:1",), show_default=True,
              help="Aspect ratio (repeatable, one generation each)")
@click.option("--style", "-s", "style_ids", multiple=True,
              type=click.Choice([s.id for s in ARTISTIC_STYLES]),
              help="Style preset (repeatable)")
@click.option("--reference", "-r", "references", multiple=True,
              type=click.Path(exists=True, dir_okay=False),
              help="Reference image file (repeatable)")
@click.option("--url", default=None, help="Server URL")
@click.option("--user", default=None, help="User id sent as X-User-Id")
def generate(
    prompt: str,
    model_ids: tuple[str, ...],
    aspect_ratios: tuple[str, ...],
    style_ids: tuple[str, ...],
    references: tuple[str, ...],
    url: str | None,
    user: str | None,
):
    """Generate images and follow their progress."""
    console.print()
    console.print(Panel(
        f"[bold]Image Studio[/bold]\n\n"
        f"Prompt: {prompt}\n"
        f"Models: {', '.join(model_ids)}\n"
        f"Aspect ratios: {', '.join(aspect_ratios)}",
        border_style="blue"
    ))

    try:
        generations = asyncio.run(_generate(
            prompt, list(model_ids), list(aspect_ratios), list(style_ids),
            [Path(r) for r in references], url, user,
        ))
    except InvalidSubmission:
        sys.exit(1)
    except httpx.HTTPError as e:
        console.print(f"Server request failed: {e}", style="red", markup=False)
        sys.exit(1)

    if not generations:
        console.print("[red]No generations were started[/red]")
        sys.exit(1)

    table = Table(title="Results")
    table.add_column("Generation", style="cyan")
    table.add_column("Aspect ratio")
    table.add_column("Model")
    table.add_column("URL")

    for gen in generations:
        if not gen.images:
            table.add_row(gen.id, gen.aspect_ratio, "-", "[yellow]no images[/yellow]")
        for image in gen.images:
            table.add_row(gen.id, gen.aspect_ratio, image.model_name, image.url)

    console.print(table)


async def _generate(
    prompt: str,
    model_ids: list[str],
    aspect_ratios: list[str],
    style_ids: list[str],
    references: list[Path],
    url: str | None,
    user: str | None,
):
    async with StudioSession(url, user_id=user, notifier=ConsoleNotifier(console)) as session:
        await session.load_models()
        reference_images = [await session.service.upload_reference_image(p) for p in references]

        session.add_to_queue(
            prompt,
            model_ids,
            aspect_ratios=aspect_ratios,
            styles=style_ids,
            reference_images=reference_images or None,
        )
        await session.wait_idle()
        return session.generations


@cli.command("list")
@click.option("--limit", "-n", type=int, default=20, help="Number of generations")
@click.option("--url", default=None, help="Server URL")
@click.option("--user", default=None, help="User id sent as X-User-Id")
def list_generations(limit: int, url: str | None, user: str | None):
    """List your generations."""

    async def _list():
        async with StudioSession(url, user_id=user) as session:
            await session.refresh(limit=limit)
            return session.generations

    generations = asyncio.run(_list())
    if not generations:
        console.print("[yellow]No generations yet[/yellow]")
        return

    table = Table(title="Generations")
    table.add_column("ID", style="cyan")
    table.add_column("Created")
    table.add_column("Ratio")
    table.add_column("Status")
    table.add_column("Images", justify="right")
    table.add_column("Prompt")

    for gen in generations:
        prompt = gen.prompt[:50] + "..." if len(gen.prompt) > 50 else gen.prompt
        table.add_row(
            gen.id,
            gen.created_at.strftime("%Y-%m-%d %H:%M"),
            gen.aspect_ratio,
            gen.status.value,
            str(len(gen.images)),
            prompt,
        )

    console.print(table)


@cli.command()
@click.argument("generation_id")
@click.option("--force", "-f", is_flag=True, help="Don't ask for confirmation")
@click.option("--url", default=None, help="Server URL")
@click.option("--user", default=None, help="User id sent as X-User-Id")
def delete(generation_id: str, force: bool, url: str | None, user: str | None):
    """Delete a generation and its images."""
    if not force and not click.confirm(f"Delete generation {generation_id}?"):
        console.print("Cancelled")
        return

    async def _delete():
        async with StudioSession(url, user_id=user, notifier=ConsoleNotifier(console)) as session:
            await session.delete_generation(generation_id)

    try:
        asyncio.run(_delete())
    except httpx.HTTPError:
        sys.exit(1)


if __name__ == "__main__":
    cli()
