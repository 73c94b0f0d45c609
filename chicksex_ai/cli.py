"""
Command-line interface for ChickSex-AI.

Provides commands for:
- Analyzing an egg photo or a live camera feed
- Running batch predictions over a CSV of measurements
- Computing morphometric features and simulating the classifier
- Research queries (deep reasoning, web, maps, video concept, image)
- Managing API keys and launching the web GUI

Usage:
    chicksex analyze egg.jpg --batch B-12
    chicksex batch eggs.csv --output prediction_results.csv
    chicksex features --mass 58 --long-axis 57 --short-axis 43
    chicksex research maps "Hatcheries near me" --place "Utrecht"
    chicksex --provider dummy simulate --mass 58 --long-axis 57 --short-axis 43
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from chicksex_ai import __version__
from chicksex_ai.config import APP_NAME, AUTO_CAPTURE_THRESHOLD, BATCH_CALL_DELAY
from chicksex_ai.errors import ChickSexError
from chicksex_ai.models import Measurement
from chicksex_ai.prediction_log import PredictionLog
from chicksex_ai.provider.base import PredictionProvider, create_provider

app = typer.Typer(
    name="chicksex",
    help="ChickSex-AI: chick sex prediction from egg morphology using generative AI",
    add_completion=False,
)
console = Console()

# Global options set by the callback
state = {"provider": "gemini"}

SEX_COLORS = {"male": "blue", "female": "magenta", "unknown": "yellow", "error": "red"}


def version_callback(value: bool):
    if value:
        console.print(f"{APP_NAME} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    provider: str = typer.Option(
        "gemini", "--provider", "-p",
        help="Prediction provider (gemini, dummy)",
    ),
    verbose: bool = typer.Option(
        False, "--verbose",
        help="Show debug logging",
    ),
    version: bool = typer.Option(
        False, "--version", "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """ChickSex-AI: egg morphology analysis and research assistant."""
    state["provider"] = provider
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _get_provider() -> PredictionProvider:
    try:
        provider = create_provider(state["provider"])
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    if hasattr(provider, "api_key") and not provider.api_key:
        console.print("[red]Error:[/] No Gemini API key found")
        console.print("Set one with: [cyan]chicksex keys set gemini[/]")
        console.print("Or run offline with: [cyan]chicksex --provider dummy ...[/]")
        raise typer.Exit(1)
    return provider


def _print_log(log: PredictionLog) -> None:
    table = Table(title="Prediction Log")
    table.add_column("Batch Number", style="cyan")
    table.add_column("Prediction")
    table.add_column("Source")
    table.add_column("Timestamp", style="dim")
    for entry in log.entries:
        color = SEX_COLORS.get(entry.prediction.lower(), "white")
        table.add_row(entry.batch_number, f"[{color}]{entry.prediction}[/]", entry.source.value, entry.timestamp)
    console.print(table)


def _save_log(log: PredictionLog, log_csv: Optional[Path]) -> None:
    if log_csv:
        log_csv.write_text(log.to_csv(), encoding="utf-8")
        console.print(f"[green]Saved log to:[/] {log_csv}")


@app.command()
def analyze(
    image: Path = typer.Argument(..., help="Egg photo (JPEG, PNG, WEBP)"),
    batch: str = typer.Option(..., "--batch", "-b", help="Batch number for the log"),
    log_csv: Optional[Path] = typer.Option(None, "--log-csv", help="Export the prediction log as CSV"),
):
    """Predict chick sex from an egg photo, streaming the analysis."""
    from chicksex_ai.analyzer import ImageAnalyzer
    from chicksex_ai.camera import read_image_file

    try:
        part = read_image_file(image)
    except ChickSexError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    log = PredictionLog()
    analyzer = ImageAnalyzer(_get_provider(), log.appender)

    async def run():
        async for fragment in analyzer.analyze(batch, part):
            console.print(fragment, end="", markup=False, highlight=False)
        console.print()

    try:
        asyncio.run(run())
    except ChickSexError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    if analyzer.error:
        console.print(f"[red]Error:[/] {analyzer.error}")
        raise typer.Exit(1)

    color = SEX_COLORS[analyzer.prediction.value]
    console.print(f"\n[bold]Prediction:[/] [{color}]{analyzer.prediction.display}[/]")
    _print_log(log)
    _save_log(log, log_csv)


@app.command()
def live(
    batch: str = typer.Option(..., "--batch", "-b", help="Batch number for the log"),
    camera: int = typer.Option(0, "--camera", "-c", help="Camera index"),
    auto: bool = typer.Option(False, "--auto", help="Capture automatically once the egg is aligned"),
    threshold: float = typer.Option(AUTO_CAPTURE_THRESHOLD, "--threshold", "-t", help="Alignment confidence required to capture"),
    no_gate: bool = typer.Option(False, "--no-gate", help="Allow manual capture regardless of alignment"),
    log_csv: Optional[Path] = typer.Option(None, "--log-csv", help="Export the prediction log as CSV"),
):
    """Scan eggs with a webcam.

    Press Enter to capture a frame, or type q to quit. With --auto the first
    well-aligned frame is analysed without a key press.
    """
    from chicksex_ai.analyzer import LiveScanSession
    from chicksex_ai.camera import OpenCVCamera

    log = PredictionLog()

    def show_alignment(score):
        color = {"good": "green", "fair": "yellow", "poor": "red"}[score.band]
        console.print(f"[dim]Alignment:[/] [{color}]{score.confidence:.0%}[/]")

    def show_result(result):
        color = SEX_COLORS[result.prediction.value]
        console.print(f"\n[bold]Prediction:[/] [{color}]{result.prediction.display}[/]")
        console.print(result.analysis_text, markup=False)

    session = LiveScanSession(
        _get_provider(),
        log.appender,
        OpenCVCamera(camera),
        batch_number=batch,
        threshold=threshold,
        gate_capture=not no_gate,
        auto_capture=auto,
        on_alignment=show_alignment,
        on_result=show_result,
    )

    async def run():
        async with session:
            console.print(f"[bold]Live scan started for batch {batch}[/]")
            if auto:
                while session.auto_capture or session.state.is_busy:
                    await asyncio.sleep(0.2)
                if session.error:
                    console.print(f"[red]Error:[/] {session.error}")
                return session.error
            while True:
                answer = await asyncio.to_thread(input, "Enter = capture, q = quit: ")
                if answer.strip().lower() == "q":
                    return
                try:
                    await session.capture_and_analyze()
                except ChickSexError as e:
                    console.print(f"[yellow]{e}[/]")
                if session.error:
                    console.print(f"[red]{session.error}[/]")

    failure = None
    try:
        failure = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/]")
    except ChickSexError as e:
        console.print(f"[red]Error:[/] {session.error or e}")
        raise typer.Exit(1)

    if len(log):
        _print_log(log)
        _save_log(log, log_csv)
    if failure:
        raise typer.Exit(1)


@app.command()
def batch(
    csv_file: Path = typer.Argument(..., help="CSV with mass,long_axis,short_axis columns"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write results CSV here"),
    delay: float = typer.Option(BATCH_CALL_DELAY, "--delay", "-d", help="Seconds between provider calls"),
):
    """Predict chick sex for every row of a measurement CSV."""
    from chicksex_ai.batch import BatchConfig, BatchRunner, parse_measurements_csv, results_to_csv

    try:
        rows = parse_measurements_csv(csv_file.read_text(encoding="utf-8"))
    except OSError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)
    except ChickSexError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    console.print(f"[green]Parsed:[/] {len(rows)} eggs from {csv_file}")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Processing...", total=len(rows))

        def update(results, index, total):
            progress.update(task, description=f"Processed egg {index + 1} of {total}", completed=index + 1)

        runner = BatchRunner(_get_provider(), BatchConfig(delay=delay), on_progress=update)
        try:
            results = asyncio.run(runner.run(rows))
        except KeyboardInterrupt:
            runner.cancel()
            console.print("[yellow]Cancelled[/]")
            raise typer.Exit(130)

    table = Table(title="Prediction Results")
    table.add_column("ID", style="cyan")
    table.add_column("Mass (g)", justify="right")
    table.add_column("Long Axis (mm)", justify="right")
    table.add_column("Short Axis (mm)", justify="right")
    table.add_column("Predicted Sex")
    for i, row in enumerate(results):
        m = row.measurement
        color = SEX_COLORS[row.predicted_sex.value]
        table.add_row(
            m.id or str(i + 1), f"{m.mass:g}", f"{m.long_axis:g}", f"{m.short_axis:g}",
            f"[{color}]{row.predicted_sex.value}[/]",
        )
    console.print(table)

    if output:
        output.write_text(results_to_csv(results), encoding="utf-8")
        console.print(f"[green]Saved to:[/] {output}")


@app.command("sample-csv")
def sample_csv_command(
    output: Path = typer.Option(Path("sample_eggs.csv"), "--output", "-o", help="Where to write the template"),
):
    """Write a template measurement CSV."""
    from chicksex_ai.batch import sample_csv

    output.write_text(sample_csv(), encoding="utf-8")
    console.print(f"[green]Saved template to:[/] {output}")


@app.command()
def features(
    mass: float = typer.Option(..., "--mass", "-m", help="Egg mass in grams"),
    long_axis: float = typer.Option(..., "--long-axis", "-l", help="Long axis in mm"),
    short_axis: float = typer.Option(..., "--short-axis", "-s", help="Short axis in mm"),
):
    """Compute morphometric features for one egg (offline)."""
    from chicksex_ai.morphometrics import compute_features, describe_features

    measurement = Measurement(mass=mass, long_axis=long_axis, short_axis=short_axis)
    derived = compute_features(measurement)
    if derived is None:
        console.print("[red]Error:[/] Invalid measurements. Long axis and mass cannot be zero.")
        raise typer.Exit(1)

    table = Table(title="Egg Metrics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    for line in describe_features(measurement, derived):
        name, value = line[2:].split(": ", 1)
        table.add_row(name, value)
    console.print(table)


@app.command()
def simulate(
    mass: float = typer.Option(..., "--mass", "-m", help="Egg mass in grams"),
    long_axis: float = typer.Option(..., "--long-axis", "-l", help="Long axis in mm"),
    short_axis: float = typer.Option(..., "--short-axis", "-s", help="Short axis in mm"),
):
    """Simulate the trained classifier on one egg."""
    from chicksex_ai.predict import simulate_model_prediction

    measurement = Measurement(mass=mass, long_axis=long_axis, short_axis=short_axis)
    try:
        result = asyncio.run(simulate_model_prediction(_get_provider(), measurement))
    except ChickSexError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    color = SEX_COLORS[result.prediction.value]
    console.print(f"[bold]Predicted sex:[/] [{color}]{result.prediction.display}[/]")
    console.print(f"[bold]Confidence:[/] {result.confidence:.0%}")


def _make_locator(lat: Optional[float], lon: Optional[float], place: Optional[str]):
    from chicksex_ai.locate import FixedLocator, NoLocator, PlaceLocator

    if lat is not None and lon is not None:
        return FixedLocator(lat, lon)
    if place:
        return PlaceLocator(place)
    return NoLocator("No location given. Pass --lat and --lon, or --place.")


def _run_research(mode: str, prompt: str, locator=None, output: Optional[Path] = None) -> None:
    from chicksex_ai.research import ResearchMode, ResearchOrchestrator

    research = ResearchOrchestrator(_get_provider(), locator=locator)
    streaming = ResearchMode(mode) in (ResearchMode.THINK, ResearchMode.VIDEO)

    async def run():
        printed = 0
        async for current in research.stream(mode, prompt):
            if streaming and len(current.text) > printed:
                console.print(current.text[printed:], end="", markup=False, highlight=False)
                printed = len(current.text)
        if streaming:
            console.print()
        return research.state

    try:
        result = asyncio.run(run())
    except ChickSexError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    if result.error:
        console.print(f"[red]Error:[/] {result.error}")
        raise typer.Exit(1)

    if result.image is not None:
        target = output or Path("generated.jpg")
        target.write_bytes(result.image)
        console.print(f"[green]Saved image to:[/] {target}")
    elif not streaming:
        console.print(Markdown(result.to_markdown()))


@app.command()
def research(
    mode: str = typer.Argument(..., help="Mode: think, video, web, maps, image"),
    prompt: str = typer.Argument(..., help="Question, topic or search"),
    lat: Optional[float] = typer.Option(None, "--lat", help="Latitude for maps mode"),
    lon: Optional[float] = typer.Option(None, "--lon", help="Longitude for maps mode"),
    place: Optional[str] = typer.Option(None, "--place", help="Place name to geocode for maps mode"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Image output path (image mode)"),
):
    """Run a research query.

    Examples:
        chicksex research think "How reliable is shape index for sexing?"
        chicksex research web "Latest in-ovo sexing technology"
        chicksex research maps "Poultry farms near me" --lat 52.09 --lon 5.12
    """
    from chicksex_ai.errors import GeolocationError
    from chicksex_ai.research import ResearchMode

    try:
        ResearchMode(mode)
    except ValueError:
        console.print(f"[red]Error:[/] Unknown mode '{mode}'")
        console.print(f"Available modes: {', '.join(m.value for m in ResearchMode)}")
        raise typer.Exit(1)

    try:
        locator = _make_locator(lat, lon, place)
    except GeolocationError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    _run_research(mode, prompt, locator=locator, output=output)


@app.command()
def image(
    prompt: str = typer.Argument(..., help="Description of the image"),
    output: Path = typer.Option(Path("generated.jpg"), "--output", "-o", help="Where to save the JPEG"),
):
    """Generate an illustration."""
    _run_research("image", prompt, output=output)


@app.command()
def info():
    """Show configuration and provider status."""
    from chicksex_ai import config
    from chicksex_ai.keys import KeyManager

    console.print(f"[bold]{APP_NAME} v{__version__}[/]\n")

    km = KeyManager()
    table = Table(title="Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Notes")

    table.add_row("dummy", "✓ Available", "Offline scripted responses")
    try:
        from google import genai  # noqa: F401
        has_key = km.get_key("gemini") is not None or km.get_key("google") is not None
        table.add_row("gemini", "✓ Available" if has_key else "⚠ No API key", f"{config.FAST_MODEL}, {config.DEEP_MODEL}")
    except ImportError:
        table.add_row("gemini", "✗ Not installed", "pip install google-genai")
    console.print(table)

    settings = Table(title="Settings")
    settings.add_column("Setting", style="cyan")
    settings.add_column("Value", style="green")
    settings.add_row("Batch call delay", f"{config.BATCH_CALL_DELAY}s")
    settings.add_row("Alignment poll interval", f"{config.ALIGNMENT_POLL_INTERVAL}s")
    settings.add_row("Auto-capture threshold", f"{config.AUTO_CAPTURE_THRESHOLD:.0%}")
    settings.add_row("Image model", config.IMAGE_MODEL)
    settings.add_row("Data directory", str(config.DATA_DIR))
    console.print(settings)

    console.print("\n[bold]Camera Support:[/]")
    try:
        import cv2
        console.print(f"  [green]✓[/] OpenCV {cv2.__version__} installed")
    except ImportError:
        console.print("  [yellow]✗[/] OpenCV not installed (pip install opencv-python)")


@app.command()
def keys(
    action: str = typer.Argument(..., help="Action: list, set, get, delete, status, export"),
    service: Optional[str] = typer.Argument(None, help="Service name (gemini, google)"),
):
    """Manage API keys securely.

    Examples:
        chicksex keys list              # List all keys
        chicksex keys set gemini        # Set Gemini key
        chicksex keys status gemini     # Check Gemini key status
        chicksex keys delete gemini     # Delete Gemini key
        chicksex keys export            # Export keys as env vars
    """
    from chicksex_ai.keys import SERVICES, KeyManager, env_var_for, export_to_env, mask_key

    km = KeyManager()

    if action == "list":
        table = Table(title="API Keys Status")
        table.add_column("Service", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Source", style="yellow")
        table.add_column("Value", style="dim")

        for key_info in km.list_keys():
            status = "✓ Set" if key_info.is_set else "✗ Not set"
            status_color = "green" if key_info.is_set else "red"
            table.add_row(
                key_info.service,
                f"[{status_color}]{status}[/]",
                key_info.source,
                key_info.masked_value if key_info.is_set else "-",
            )

        console.print(table)
        console.print("\n[dim]Priority: env > keychain > config file[/]")
        return

    if action == "export":
        env_vars = export_to_env(km)
        if not env_vars:
            console.print("[yellow]No keys to export.[/]")
            return
        console.print("[bold]Export these to your environment:[/]\n")
        for var, value in env_vars.items():
            console.print(f"export {var}='{value}'", markup=False)
        return

    if action not in ("set", "get", "status", "delete"):
        console.print(f"[red]Error:[/] Unknown action '{action}'")
        console.print("Available actions: list, set, get, delete, status, export")
        raise typer.Exit(1)

    if not service:
        console.print("[red]Error:[/] Service name required")
        console.print(f"Usage: [cyan]chicksex keys {action} <service>[/]")
        console.print(f"Available services: {', '.join(SERVICES.keys())}")
        raise typer.Exit(1)

    if action == "set":
        from getpass import getpass
        key = getpass(f"Enter API key for {service}: ")

        if not key:
            console.print("[red]Error:[/] Key cannot be empty")
            raise typer.Exit(1)

        storage = km.set_key(service, key)
        console.print(f"[green]✓[/] API key for {service} saved to {storage}")
        if storage == "config":
            console.print(f"[yellow]Note:[/] Key stored in local file ({km.config_file})")
            console.print("       For better security, use environment variables")

    elif action == "get":
        key = km.get_key(service)
        if key:
            console.print(f"[green]✓[/] Key found: {mask_key(key)}")
        else:
            console.print(f"[red]✗[/] No key found for {service}")
            console.print(f"Set with: [cyan]chicksex keys set {service}[/]")

    elif action == "status":
        key_info = km.get_key_info(service)
        if key_info.is_set:
            console.print(f"[green]✓[/] API key for {service} is set")
            console.print(f"    Source: {key_info.source}")
            console.print(f"    Value: {key_info.masked_value}")
        else:
            console.print(f"[red]✗[/] No API key found for {service}")
            console.print("\nTo set the key:")
            console.print(f"  Option 1: [cyan]chicksex keys set {service}[/]")
            console.print(f"  Option 2: [cyan]export {env_var_for(service)}='your-key-here'[/]")

    else:
        if km.delete_key(service):
            console.print(f"[green]✓[/] API key for {service} deleted")
        else:
            console.print(f"[yellow]⚠[/] No key found to delete for {service}")


@app.command()
def gui(
    port: int = typer.Option(7860, "--port", help="Port to run GUI on"),
    share: bool = typer.Option(False, "--share", "-s", help="Create a public Gradio link"),
):
    """Launch the web GUI.

    Tabs: Analyze, Live Scan, Batch, Simulator, Contribute, Research and the
    shared Prediction Log.
    """
    try:
        import gradio  # noqa: F401
    except ImportError:
        console.print("[red]Error:[/] Gradio not installed")
        console.print("  [cyan]pip install 'gradio>=4.0.0'[/]")
        raise typer.Exit(1)

    from chicksex_ai.gui import launch

    console.print(f"[bold]Starting {APP_NAME} GUI...[/]\n")
    console.print(f"[dim]Opening browser at http://127.0.0.1:{port}[/]")
    console.print("[dim]Press Ctrl+C to stop the server[/]\n")

    try:
        launch(provider=_get_provider(), port=port, share=share)
    except OSError as e:
        console.print(f"[red]Error launching GUI:[/] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
