"""Typer admin CLI: inspect verdict history and run one-off analyses from image files."""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from guardian.ai.factory import get_vision_model
from guardian.ai.schema import AnalysisRequest, AnalysisResult, Verdict
from guardian.ai.sse import SSEFragmentDecoder
from guardian.core.config import get_config
from guardian.core.db import make_session_factory
from guardian.core.errors import UpstreamModelError, ValidationError
from guardian.core.io_utils import encode_image_file
from guardian.core.logging import setup_logging
from guardian.session.endpoint import SessionRegistry, StreamHandle

app = typer.Typer(no_args_is_help=True)


VERDICT_STYLES = {
    Verdict.SAFE: "green",
    Verdict.CAUTION: "yellow",
    Verdict.DANGER: "red",
    Verdict.UNKNOWN: "dim",
}


def _get_registry() -> SessionRegistry:
    cfg = get_config()
    return SessionRegistry(
        make_session_factory(cfg),
        get_vision_model(cfg.vision_model, cfg),
        max_history_limit=cfg.max_history_limit,
        max_sessions=cfg.max_sessions,
    )


def _session_or_default(session: str | None) -> str:
    return session if session else get_config().default_session_id


def _verdict_text(record: AnalysisResult) -> Text:
    return Text(record.verdict.value, style=VERDICT_STYLES.get(record.verdict, ""))


@app.callback()
def main_callback(
    config: Path | None = typer.Option(None, "--config", help="Path to guardian_config.yml"),
    log_level: str | None = typer.Option(None, "--log-level", help="Override log_level from config"),
) -> None:
    """Edge Guardian admin tools."""
    if config is not None:
        get_config(config)
    setup_logging(log_level)


@app.command("history")
def history(
    limit: int = typer.Option(20, "--limit", help="Maximum number of records to show"),
    session: str | None = typer.Option(None, "--session", help="Session id (default: configured default)"),
) -> None:
    """List the most recent verdicts, newest first."""
    registry = _get_registry()
    records = registry.get(_session_or_default(session)).list_recent(limit)
    if not records:
        typer.echo("No history.")
        return
    table = Table(title=None)
    table.add_column("ID")
    table.add_column("Timestamp")
    table.add_column("Verdict")
    table.add_column("Score", justify="right")
    table.add_column("Tactic")
    table.add_column("Explanation")
    for r in records:
        ts = r.timestamp.isoformat(timespec="seconds") if r.timestamp else ""
        table.add_row(r.id or "", ts, _verdict_text(r), str(r.score), r.tactic, r.explanation)
    console = Console()
    console.print(table)


@app.command("analyze")
def analyze(
    image_path: Path = typer.Argument(..., help="Image file to analyze", exists=True, dir_okay=False),
    prompt: str | None = typer.Option(None, "--prompt", help="Override the default analysis prompt"),
    session: str | None = typer.Option(None, "--session", help="Session id (default: configured default)"),
    stream: bool = typer.Option(False, "--stream", help="Print model text as it arrives"),
    wait: float = typer.Option(30.0, "--wait", help="Seconds to wait for the streamed record to be stored"),
) -> None:
    """Analyze one image file and record the verdict."""
    registry = _get_registry()
    endpoint = registry.get(_session_or_default(session))
    request = AnalysisRequest(image=encode_image_file(image_path), prompt=prompt, stream=stream)
    try:
        outcome = endpoint.analyze(request)
    except (ValidationError, UpstreamModelError) as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)

    console = Console()
    if isinstance(outcome, StreamHandle):
        decoder = SSEFragmentDecoder()
        for chunk in outcome:
            for fragment in decoder.feed(chunk):
                console.print(fragment, end="", markup=False, highlight=False)
        for fragment in decoder.close():
            console.print(fragment, end="", markup=False, highlight=False)
        console.print()
        if not outcome.capture.wait(wait):
            typer.secho("Capture still running; record not confirmed.", fg=typer.colors.YELLOW)
            raise typer.Exit(1)
        if outcome.capture.error:
            typer.secho(f"Capture failed: {outcome.capture.error}", fg=typer.colors.RED)
            raise typer.Exit(1)
        typer.secho(f"Stored record {outcome.capture.record_id}.", fg=typer.colors.GREEN)
        return

    table = Table(title=None, show_header=False)
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("ID", outcome.id or "")
    table.add_row("Verdict", _verdict_text(outcome))
    table.add_row("Score", str(outcome.score))
    table.add_row("Tactic", outcome.tactic)
    table.add_row("Explanation", outcome.explanation)
    console.print(table)


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8787, "--port", help="Bind port"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("guardian.api.main:app", host=host, port=port, log_config=None)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
