"""b2client CLI entry point."""

import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer
from tqdm import tqdm

from b2client import __version__
from b2client.api.client import B2Client, read_file_chunks
from b2client.core.config.config import ConfigManager
from b2client.core.config.helpers import parse_bytes
from b2client.core.config.profiles import ProfileManager, ProfileNotFound
from b2client.core.const import DEFAULT_UPLOAD_THREADS
from b2client.core.exceptions import B2Error
from b2client.upload.part_size import choose_part_size
from b2client.upload.streaming_uploader import LargeFileStreamUploader

app = typer.Typer(add_completion=False, help="Backblaze B2 large file uploads.")

_state: dict[str, Optional[str]] = {"profile": None}


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def callback(
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Configuration profile to load."
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the b2client version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
) -> None:
    """Handle global CLI options."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    _state["profile"] = profile


def _make_client(
    threads: Optional[int] = None, part_size: Optional[str] = None
) -> B2Client:
    manager = ConfigManager(ProfileManager(), _state["profile"])
    try:
        config = manager.resolve_effective_config({
            "upload_threads": threads,
            "part_size": parse_bytes(part_size) if part_size else None,
        })
    except (ProfileNotFound, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    return B2Client(config=config)


def _fail(exc: B2Error) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


@app.command("upload")
def upload(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    bucket_id: str = typer.Argument(..., help="Bucket to upload into."),
    name: Optional[str] = typer.Option(None, "--name", help="Remote file name."),
    content_type: Optional[str] = typer.Option(None, "--content-type"),
    threads: Optional[int] = typer.Option(None, "--threads", min=1),
    part_size: Optional[str] = typer.Option(
        None, "--part-size", help="Part size, e.g. 100mb."
    ),
    cancel_on_failure: bool = typer.Option(False, "--cancel-on-failure"),
) -> None:
    """Upload a local file."""
    client = _make_client(threads, part_size)
    size = path.stat().st_size
    try:
        with tqdm(total=size, unit="B", unit_scale=True, desc=path.name) as pbar:
            file = client.upload_file(
                bucket_id,
                path,
                file_name=name,
                content_type=content_type,
                progress_callback=pbar.update,
                cancel_on_failure=cancel_on_failure,
            )
    except B2Error as exc:
        _fail(exc)
    typer.echo(file.file_id)


@app.command("resume")
def resume(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    file_id: str = typer.Argument(..., help="Large file to resume."),
    threads: Optional[int] = typer.Option(None, "--threads", min=1),
    part_size: Optional[str] = typer.Option(
        None, "--part-size", help="Part size the upload was started with."
    ),
) -> None:
    """Resume an interrupted large file upload from a local file."""
    client = _make_client(threads, part_size)
    size = path.stat().st_size
    try:
        limits = client.part_size_limits()
        with tqdm(total=size, unit="B", unit_scale=True, desc=path.name) as pbar:
            streamer = LargeFileStreamUploader(
                client.large_file,
                choose_part_size(size, limits, client.config.part_size),
                threads=client.config.upload_threads or DEFAULT_UPLOAD_THREADS,
                progress_callback=pbar.update,
            )
            file = streamer.resume(file_id, read_file_chunks(path), size)
    except B2Error as exc:
        _fail(exc)
    typer.echo(file.file_id)


@app.command("list-parts")
def list_parts(
    file_id: str = typer.Argument(..., help="Unfinished large file.")
) -> None:
    """List the parts uploaded for an unfinished large file."""
    client = _make_client()
    try:
        for part in client.large_file.iter_parts(file_id):
            typer.echo(
                f"{part.part_number}\t{part.content_length}\t{part.content_sha1}"
            )
    except B2Error as exc:
        _fail(exc)


@app.command("cancel")
def cancel(file_id: str = typer.Argument(..., help="Unfinished large file.")) -> None:
    """Cancel an unfinished large file and discard its parts."""
    client = _make_client()
    try:
        client.large_file.cancel_file(file_id)
    except B2Error as exc:
        _fail(exc)
    typer.echo(f"Canceled {file_id}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
