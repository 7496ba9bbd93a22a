"""CLI entry point for transcript-summarize."""

import logging
import time
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from .errors import PipelineError, StageFailed
from .sources import extract_subtitles, load_local_transcript
from .summarize import (
    BackendConfig,
    ChunkConfig,
    PipelineOptions,
    Stage,
    SummaryPipeline,
    count_words,
    load_chunk_template,
    load_sampling_params,
    merge,
    run_inference,
    split,
)
from .summarize.pipeline import STAGE_LABELS
from .summarize.prompts import FINAL_TEMPLATE, STAGE1_TEMPLATE

app = typer.Typer(
    name="transcript-summarize",
    help="Summarize long transcripts with a local LLM backend (split, infer, merge).",
    no_args_is_help=True,
)

console = Console()

DEFAULT_MODEL = "llama3.1"

# Shared option types
UrlOption = Annotated[
    str | None,
    typer.Option(
        "--url",
        "-u",
        help="Backend generate endpoint (defaults to the backend's local URL)",
        envvar="TRANSCRIPT_SUMMARIZE_URL",
    ),
]
ModelOption = Annotated[
    str,
    typer.Option("--model", "-m", help="Model name", envvar="TRANSCRIPT_SUMMARIZE_MODEL"),
]
BackendOption = Annotated[
    str,
    typer.Option(
        "--backend",
        "-b",
        help="Backend type: ollama, koboldai or openai",
        envvar="TRANSCRIPT_SUMMARIZE_BACKEND",
    ),
]
ParamsOption = Annotated[
    Path | None,
    typer.Option("--params", "-p", help="JSON file with sampling parameters"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", help="Seconds to wait for each backend response"),
]
RetriesOption = Annotated[
    int,
    typer.Option("--retries", help="Attempts per chunk before giving up"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Verbose output"),
]


def _configure_logging(verbose: bool) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _progress_bar() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def _unescape(text: str) -> str:
    """Expand backslash escapes such as \\n while keeping non-ASCII text intact."""
    return text.encode("latin-1", "backslashreplace").decode("unicode_escape")


def _format_elapsed(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours} hours {minutes} minutes {secs} seconds"


@app.command()
def extract(
    source: Annotated[Path, typer.Argument(help="Subtitle file (.srt or .vtt)")],
    out: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Output text file (default: <source>.txt)"),
    ] = None,
    timed: Annotated[
        bool,
        typer.Option("--timed", help="Write Script/Start Time/End Time records"),
    ] = False,
) -> None:
    """Convert a subtitle file to a plain-text transcript."""
    if not source.exists():
        console.print(f"[red]File not found:[/red] {source}")
        raise typer.Exit(1)

    out = out or source.with_suffix(".txt")
    try:
        text = extract_subtitles(source, timed=timed)
        out.write_text(text, encoding="utf-8")
    except (PipelineError, OSError) as e:
        console.print(f"[red]Extraction failed:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] Transcript: {count_words(text):,} words → {out}")


@app.command("split")
def split_command(
    input_file: Annotated[Path, typer.Option("--input", "-i", help="Transcript file")],
    out_dir: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Output directory (default: ./<input>_splits)"),
    ] = None,
    max_tokens: Annotated[
        int | None,
        typer.Option("--max-tokens", "-s", help="Maximum words per chunk"),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help='JSON file with {"header": ..., "footer": ...}'),
    ] = None,
    single_shot: Annotated[
        bool,
        typer.Option("--single-shot", help="Write the whole transcript as one chunk"),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Split a transcript into numbered chunk files."""
    _configure_logging(verbose)
    out_dir = out_dir or Path.cwd() / f"{input_file.stem}_splits"

    try:
        if config is not None:
            template = load_chunk_template(config)
        else:
            template = FINAL_TEMPLATE if single_shot else STAGE1_TEMPLATE
        chunk_config = ChunkConfig.from_template(
            template, max_tokens=max_tokens, single_shot=single_shot
        )
        transcript = load_local_transcript(input_file)
        paths = split(transcript.text, chunk_config, out_dir, stem=input_file.stem)
    except PipelineError as e:
        console.print(f"[red]Split failed:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] Wrote {len(paths)} chunk(s) to {out_dir}")


@app.command()
def infer(
    chunk_dir: Annotated[Path, typer.Option("--dir", "-d", help="Directory of chunk files")],
    output: Annotated[Path, typer.Option("--output", "-o", help="Results JSON file")],
    url: UrlOption = None,
    model: ModelOption = DEFAULT_MODEL,
    backend: BackendOption = "ollama",
    params: ParamsOption = None,
    timeout: TimeoutOption = 300.0,
    retries: RetriesOption = 3,
    verbose: VerboseOption = False,
) -> None:
    """Send every chunk file to the backend and write the results JSON."""
    _configure_logging(verbose)

    try:
        sampling_params = load_sampling_params(params) if params else None
        backend_config = BackendConfig(
            backend=backend, url=url, timeout=timeout, max_retries=retries
        )
        with _progress_bar() as progress:
            task = progress.add_task("Generating...", total=None)

            def on_progress(done: int, total: int, source_id: str) -> None:
                progress.update(task, completed=done, total=total, description=source_id)

            results = run_inference(
                chunk_dir,
                output,
                backend=backend_config,
                model=model,
                sampling_params=sampling_params,
                on_progress=on_progress,
            )
    except PipelineError as e:
        console.print(f"[red]Inference failed:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] All files processed: {len(results)} result(s) → {output}")


@app.command("merge")
def merge_command(
    results: Annotated[Path, typer.Argument(help="Results JSON file")],
    output: Annotated[Path, typer.Argument(help="Merged text file")],
    backend: BackendOption = "ollama",
    separator: Annotated[
        str,
        typer.Option("--separator", help="Text after each entry (escapes like \\n allowed)"),
    ] = "\\n",
    verbose: VerboseOption = False,
) -> None:
    """Merge a results JSON into one text file in chunk order."""
    _configure_logging(verbose)

    try:
        merged = merge(results, output, backend, _unescape(separator))
    except PipelineError as e:
        console.print(f"[red]Merge failed:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] Merged {count_words(merged):,} words → {output}")


@app.command()
def run(
    source: Annotated[Path, typer.Argument(help="Transcript (.txt) or subtitle (.srt, .vtt) file")],
    out: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Final summary file (default: ./output_<source>.txt)"),
    ] = None,
    chunk_tokens: Annotated[
        int,
        typer.Option("--max-tokens", "-s", help="Maximum words per first-pass chunk"),
    ] = 500,
    start_config: Annotated[
        Path | None,
        typer.Option("--start-config", help="Chunk template JSON for the first pass"),
    ] = None,
    final_config: Annotated[
        Path | None,
        typer.Option("--final-config", help="Chunk template JSON for the final pass"),
    ] = None,
    url: UrlOption = None,
    model: ModelOption = DEFAULT_MODEL,
    backend: BackendOption = "ollama",
    params: ParamsOption = None,
    final_params: Annotated[
        Path | None,
        typer.Option("--final-params", help="Sampling parameters for the final pass"),
    ] = None,
    work_dir: Annotated[
        Path | None,
        typer.Option("--work-dir", help="Directory for scratch files (default: system temp)"),
    ] = None,
    context_tokens: Annotated[
        int | None,
        typer.Option("--context-tokens", help="Warn if the final pass input exceeds this"),
    ] = None,
    timeout: TimeoutOption = 300.0,
    retries: RetriesOption = 3,
    verbose: VerboseOption = False,
) -> None:
    """Summarize a transcript end to end: chunk summaries, then one final pass."""
    _configure_logging(verbose)
    start_time = time.monotonic()

    if not source.exists():
        console.print(f"[red]File not found:[/red] {source}")
        raise typer.Exit(1)

    out = out or Path(f"output_{source.stem}.txt")

    try:
        options = PipelineOptions(
            model=model,
            backend=BackendConfig(backend=backend, url=url, timeout=timeout, max_retries=retries),
            chunk_tokens=chunk_tokens,
            stage1_template=load_chunk_template(start_config) if start_config else STAGE1_TEMPLATE,
            final_template=load_chunk_template(final_config) if final_config else FINAL_TEMPLATE,
            sampling_params=load_sampling_params(params) if params else None,
            final_sampling_params=load_sampling_params(final_params) if final_params else None,
            work_dir=work_dir,
            context_tokens=context_tokens,
        )
        backend_url = options.backend.resolved_url()
    except PipelineError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1) from e

    if verbose:
        console.print(f"[dim]Backend: {backend} at {backend_url}[/dim]")

    with _progress_bar() as progress:
        task = progress.add_task("Starting...", total=None)

        def on_stage(stage: Stage) -> None:
            progress.update(
                task, description=STAGE_LABELS.get(stage, stage.value), completed=0, total=None
            )

        def on_progress(done: int, total: int, source_id: str) -> None:
            progress.update(task, completed=done, total=total)

        options.on_stage = on_stage
        options.on_progress = on_progress

        try:
            SummaryPipeline(options).run(source, out)
        except StageFailed as e:
            console.print(f"[red]{e.stage} failed:[/red] {e.error}")
            raise typer.Exit(1) from e
        except PipelineError as e:
            console.print(f"[red]Pipeline failed:[/red] {e}")
            raise typer.Exit(1) from e

    console.print("[green]✓[/green] Summary generated")
    console.print(
        Panel(
            f"[bold green]Done![/bold green]\n\nOutput: {out}\n"
            f"Execution Time: {_format_elapsed(time.monotonic() - start_time)}"
        )
    )


if __name__ == "__main__":
    app()
