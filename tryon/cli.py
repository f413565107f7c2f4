"""CLI entry-point: submit jobs, inspect status, watch progress, run workers."""

import asyncio
import json
import logging
from contextlib import closing

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

from tryon.client import HttpStatusSource, JobObserver, Observation, ProgressEstimator, ServiceStatusSource
from tryon.config import get_settings
from tryon.jobs import (
    Dispatcher,
    JobState,
    NotFoundError,
    StatusService,
    ValidationError,
    Worker,
    build_job_store,
    load_generator,
)

app = typer.Typer(help="Asynchronous image generation jobs")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level")):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)


@app.command()
def submit(
    image: str = typer.Option(..., "--image", help="Primary image URL or data: URL"),
    person: str = typer.Option(None, "--person", help="Optional person image for try-on"),
    prompt: str = typer.Option(None, "--prompt", help="Optional free-text prompt"),
    sizing: str = typer.Option(None, "--sizing", help="Optional sizing hint"),
):
    """Create and enqueue a generation job in the configured store; print its id."""
    console = Console()
    settings = get_settings()
    payload = {"primaryImage": image, "secondaryImage": person, "prompt": prompt, "sizing": sizing}
    with closing(build_job_store(settings)) as store:
        try:
            job_id = Dispatcher(store).submit(payload)
        except ValidationError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)
    console.print(job_id)


@app.command()
def status(job_id: str = typer.Argument(..., help="Job id returned by submit")):
    """Print a job's public status payload."""
    console = Console()
    settings = get_settings()
    with closing(build_job_store(settings)) as store:
        try:
            snapshot = StatusService(store).get_status(job_id)
        except NotFoundError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)
    console.print_json(json.dumps(snapshot.to_response()))


@app.command()
def watch(
    job_id: str = typer.Argument(..., help="Job id to observe"),
    api: str = typer.Option(None, "--api", help="Status API base URL (default TRYON_API_URL)"),
    local: bool = typer.Option(False, "--local", help="Read the configured store directly instead of the API"),
    max_duration: float = typer.Option(None, "--max-duration", help="Give up after this many seconds"),
):
    """Poll a job until it finishes, showing an estimated progress bar."""
    console = Console()
    settings = get_settings()

    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
    ) as progress:
        task = progress.add_task(f"{job_id} queued", total=100)

        def on_update(observation: Observation) -> None:
            progress.update(
                task,
                completed=observation.progress,
                description=f"{job_id} {observation.state.value}",
            )

        async def _watch() -> Observation:
            observer_kw = dict(
                poll_interval=settings.tryon_poll_interval_s,
                tick_interval=settings.tryon_progress_tick_s,
                max_duration=max_duration,
                estimator_factory=lambda: ProgressEstimator(step=settings.tryon_progress_step),
                on_update=on_update,
            )
            if local:
                store = build_job_store(settings)
                try:
                    observer = JobObserver(ServiceStatusSource(StatusService(store)), **observer_kw)
                    observer.start(job_id)
                    return await observer.wait()
                finally:
                    store.close()
            async with HttpStatusSource(api or settings.tryon_api_url) as source:
                observer = JobObserver(source, **observer_kw)
                observer.start(job_id)
                return await observer.wait()

        final = asyncio.run(_watch())

    if final.state is JobState.COMPLETED:
        console.print(f"[green]Done:[/green] {final.result}")
        return
    if final.client_side:
        console.print(f"[yellow]Stopped watching: {final.error}. The job may still be running.[/yellow]")
    else:
        console.print(f"[red]Job failed: {final.error}[/red]")
    raise typer.Exit(1)


@app.command()
def worker(
    once: bool = typer.Option(False, "--once", help="Process at most one job, then exit"),
    generator: str = typer.Option(None, "--generator", help="module:function (default TRYON_GENERATOR)"),
):
    """Run the reference worker against the configured store."""
    console = Console()
    settings = get_settings()
    try:
        generate = load_generator(generator or settings.tryon_generator)
    except (ImportError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    with closing(build_job_store(settings)) as store:
        w = Worker(
            store,
            generate,
            idle_s=settings.tryon_worker_idle_s,
            stalled_after_s=settings.tryon_stalled_after_s,
        )
        if once:
            processed = w.run_once()
            console.print("Processed 1 job." if processed else "Queue is empty.")
            return
        console.print(f"Worker running against {store.backend} store. Ctrl+C to stop.")
        try:
            w.run_forever()
        except KeyboardInterrupt:
            w.stop()
            console.print("Worker stopped.")


@app.command("requeue-stalled")
def requeue_stalled(
    older_than: float = typer.Option(None, "--older-than", help="Seconds since last update (default TRYON_STALLED_AFTER_S)"),
):
    """Return active jobs that stopped making progress to the queue."""
    console = Console()
    settings = get_settings()
    threshold = older_than if older_than is not None else settings.tryon_stalled_after_s
    with closing(build_job_store(settings)) as store:
        requeued = store.requeue_stalled(threshold)
    console.print(f"Requeued {len(requeued)} job(s).")
    for job_id in requeued:
        console.print(f"  {job_id}")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(None, help="Port (default PORT)"),
):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("backend.main:app", host=host, port=port or settings.port)


if __name__ == "__main__":
    app()
