"""
Typer CLI for mockgen.

Commands:
    mockgen generate        - Generate mock tests from PYQ + reference mock files
    mockgen keys check      - Validate an API key file
    mockgen inspect FILE    - Parse a saved response and report its completeness

Usage:
    mockgen generate --pyq pyqs/ --reference-mock refs/ --prompt prompt.txt -o out/mock.json
    mockgen generate ... --number-of-mocks 5 --concurrent-limit 3
    mockgen keys check --api-key-file api_key.txt
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from config import get_settings
from mockgen.errors import ConfigurationError, InvalidCredential, ParseFailure

app = typer.Typer(
    help="mockgen: generate exam mock tests with Gemini across a pool of API keys",
    no_args_is_help=True,
)
keys_app = typer.Typer(help="API key file commands", no_args_is_help=True)
app.add_typer(keys_app, name="keys")

console = Console()


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(1)


@app.command("generate")
def generate(
    pyq: Path = typer.Option(..., "--pyq", help="Directory with previous year question files"),
    reference_mock: Path = typer.Option(..., "--reference-mock", help="Directory with reference mock files"),
    prompt: Path = typer.Option(..., "--prompt", help="File with user instructions for the mock"),
    output: Path = typer.Option(..., "--output", "-o", help="Base output filename"),
    api_key_file: Path = typer.Option(None, "--api-key-file", help="API key file (default from settings)"),
    number_of_mocks: int = typer.Option(1, "--number-of-mocks", "-n", min=1, help="Mocks to generate"),
    max_tokens: int = typer.Option(None, "--max-tokens", min=1, help="Max output tokens per request"),
    temperature: float = typer.Option(None, "--temperature", min=0.0, max=2.0, help="Sampling temperature"),
    concurrent_limit: int = typer.Option(None, "--concurrent-limit", min=1, help="Mocks in flight at once"),
    rate_limit_delay: int = typer.Option(None, "--rate-limit-delay", min=0, help="Delay between requests (ms)"),
    thinking_budget: int = typer.Option(None, "--thinking-budget", help="-1 dynamic, 0 off, else token budget"),
    model: str = typer.Option(None, "--model", help="Gemini model"),
    max_continuations: int = typer.Option(None, "--max-continuations", min=0, help="Continuation rounds per mock"),
    max_retries: int = typer.Option(None, "--max-retries", min=1, help="Transport attempts per request"),
    log_level: str = typer.Option(None, "--log-level", help="Log level"),
):
    """
    Generate mock tests as JSON documents.

    Examples:
        mockgen generate --pyq pyqs/ --reference-mock refs/ --prompt prompt.txt -o out/mock.json
    """
    from mockgen.generation import GeminiClient, MockGenerator, file_to_part, find_source_files, summarize
    from mockgen.generation.prompts import build_request_parts
    from mockgen.keys import KeyPool, keys_from_settings
    from mockgen.logging_setup import configure_logging

    overrides = {
        "max_output_tokens": max_tokens,
        "temperature": temperature,
        "concurrent_limit": concurrent_limit,
        "rate_limit_delay_ms": rate_limit_delay,
        "thinking_budget": thinking_budget,
        "gemini_model": model,
        "max_continuations": max_continuations,
        "max_retries": max_retries,
        "log_level": log_level,
    }
    settings = get_settings().model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    configure_logging(settings.log_level, settings.log_file)

    for label, directory in (("PYQ", pyq), ("Reference mock", reference_mock)):
        if not directory.is_dir():
            _fail(f"{label} directory not found: {directory}")
    if not prompt.is_file():
        _fail(f"Prompt file not found: {prompt}")

    try:
        pool = KeyPool.create(keys_from_settings(settings, api_key_file), min_length=settings.min_key_length)
        settings.thinking_budget_for(settings.gemini_model)
    except (ConfigurationError, InvalidCredential) as e:
        _fail(str(e))

    pyq_files = find_source_files(pyq)
    reference_files = find_source_files(reference_mock)
    if not pyq_files:
        _fail(f"No supported files in {pyq}")
    if not reference_files:
        _fail(f"No supported files in {reference_mock}")

    console.print("\n[bold cyan]Mock Test Generation[/bold cyan]")
    console.print(f"  PYQ files: {len(pyq_files)}")
    console.print(f"  Reference mocks: {len(reference_files)} (template: {reference_files[0].name})")
    console.print(f"  Model: {settings.gemini_model}")
    console.print(f"  Mocks: {number_of_mocks}, API keys: {pool.size}\n")

    base_parts = build_request_parts(
        [file_to_part(p) for p in pyq_files],
        [file_to_part(p) for p in reference_files],
        prompt.read_text(encoding="utf-8"),
    )

    client = GeminiClient(model=settings.gemini_model, base_url=settings.gemini_base_url, timeout=settings.request_timeout)
    generator = MockGenerator(pool, client, base_parts, output_base=output, settings=settings)
    results = asyncio.run(generator.generate_all(number_of_mocks))

    table = Table(title="Results")
    table.add_column("Mock", justify="right")
    table.add_column("Status")
    table.add_column("Key", justify="right")
    table.add_column("Continuations", justify="right")
    table.add_column("Questions", justify="right")
    table.add_column("Output")

    for result in results:
        status = "[green]ok[/green]" if result.success else "[red]failed[/red]"
        key = str(result.key_index + 1) if result.key_index is not None else "-"
        table.add_row(
            str(result.job_id),
            status,
            key,
            str(result.continuations),
            result.progress,
            str(result.output_path) if result.output_path else "-",
        )
    console.print(table)

    stats = pool.stats()
    console.print(
        f"API keys: {stats.available}/{stats.total} available, {stats.failed} failed; "
        f"usage: " + ", ".join(f"key {i + 1}={n}" for i, n in stats.usage.items())
    )

    summary = summarize(results)
    if summary["failed"]:
        for job_id, error in summary["errors"].items():
            logger.error(f"Mock {job_id}: {error}")
        console.print(f"[red]{summary['failed']} of {summary['total']} mock(s) failed[/red]")
        raise typer.Exit(1)

    console.print(f"[green]All {summary['total']} mock(s) generated[/green]")


@keys_app.command("check")
def check_keys(
    api_key_file: Path = typer.Option(None, "--api-key-file", help="API key file (default from settings)"),
):
    """Load and validate API keys without calling the API."""
    from mockgen.keys import KeyPool, keys_from_settings, mask_key

    settings = get_settings()
    try:
        keys = keys_from_settings(settings, api_key_file)
        pool = KeyPool.create(keys, min_length=settings.min_key_length)
    except (ConfigurationError, InvalidCredential) as e:
        _fail(str(e))

    table = Table(title=f"{pool.size} API key(s)")
    table.add_column("#", justify="right")
    table.add_column("Key")
    for i, key in enumerate(k for k in keys if k.strip()):
        table.add_row(str(i + 1), mask_key(key))
    console.print(table)


@app.command("inspect")
def inspect_response(
    path: Path = typer.Argument(..., help="Saved raw response or JSON document"),
):
    """Parse a saved response and report whether it is a complete mock."""
    from mockgen.assembly import ResponseAssembler

    if not path.is_file():
        _fail(f"File not found: {path}")

    assembler = ResponseAssembler(label=path.name)
    try:
        document = assembler.parse(path.read_text(encoding="utf-8"))
    except ParseFailure as e:
        console.print(f"[red]{e}[/red]")
        console.print(f"[dim]{e.preview}[/dim]")
        raise typer.Exit(1)

    status = assembler.classify(document)
    console.print(f"Title: {document.exam_title or '-'}")
    console.print(f"Sections: {len(document.sections)}")
    console.print(f"Questions: {status.progress}")
    if status.complete:
        console.print("[green]Complete[/green]")
    else:
        console.print(f"[yellow]Incomplete: {status.reason.name.lower()}[/yellow]")
        raise typer.Exit(2)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
