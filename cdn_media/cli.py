"""CLI interface for cdn-media using Typer.

Builds delivery URLs, signs parameters, generates auth tokens, uploads
files and verifies response signatures, with Rich console output.
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.table import Table

from .auth_token import AuthToken
from .client import MediaClient
from .config import load_config
from .errors import ConfigError, MediaError
from .logs import setup_logging
from .models import UploadResult
from .signing import sign_parameters
from .transformation import Transformation
from .utils import copy_to_clipboard, format_output, format_file_size, print_success, print_error, print_warning


def expand_paths(paths: list[Path]) -> list[Path]:
    """Expand paths, recursively finding files in directories.

    Args:
        paths: List of file or directory paths

    Returns:
        List of file paths (directories expanded to their contents)
    """
    expanded = []

    for path in paths:
        if path.is_dir():
            expanded.extend(p for p in path.rglob("*") if p.is_file())
        else:
            expanded.append(path)

    return sorted(expanded, key=lambda p: p.name.lower())


def parse_pairs(pairs: list[str]) -> dict[str, str]:
    """Parse key=value arguments.

    Raises:
        typer.BadParameter: If an argument has no "="
    """
    params = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{pair}'")
        params[key] = value
    return params


app = typer.Typer(
    name="cdn-media",
    help="Build signed media delivery URLs and upload files to the media API",
    add_completion=False,
)
console = Console()


@app.command()
def url(
    source: str = typer.Argument(..., help="Public ID or remote URL"),
    transformation: Optional[str] = typer.Option(
        None,
        "--transformation",
        "-t",
        help="Raw transformation string, e.g. c_fill,w_100",
    ),
    width: Optional[str] = typer.Option(None, "--width", "-w", help="Width"),
    height: Optional[str] = typer.Option(None, "--height", "-h", help="Height"),
    crop: Optional[str] = typer.Option(None, "--crop", "-c", help="Crop mode"),
    fmt: Optional[str] = typer.Option(None, "--format", "-f", help="Delivery format"),
    resource_type: str = typer.Option("image", "--resource-type", "-r", help="image|video|raw"),
    delivery_type: str = typer.Option("upload", "--type", help="Delivery type"),
    version: Optional[str] = typer.Option(None, "--version", "-v", help="Asset version"),
    secure: Optional[bool] = typer.Option(None, "--secure/--insecure", help="Use HTTPS"),
    sign: bool = typer.Option(False, "--sign", "-s", help="Sign the URL"),
    copy: bool = typer.Option(False, "--copy", help="Copy the URL to the clipboard"),
) -> None:
    """Print the delivery URL for an asset."""
    try:
        client = MediaClient(load_config())

        t = Transformation(width=width, height=height, crop=crop)
        if transformation:
            t = t.raw_transformation(transformation)

        built = client.url(
            resource_type=resource_type,
            type=delivery_type,
            transformation=t,
            format=fmt,
            version=version,
            secure=secure,
            sign_url=sign or None,
        ).build(source)

        console.print(built, soft_wrap=True, markup=False, highlight=False)

        if copy:
            if copy_to_clipboard(built):
                console.print("[dim]URL copied to clipboard[/dim]")
            else:
                print_warning("Could not copy to clipboard")

    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)
    except MediaError as e:
        print_error(f"Could not build URL: {e}")
        raise typer.Exit(1)


@app.command()
def sign(
    params: list[str] = typer.Argument(..., help="Parameters as key=value"),
) -> None:
    """Print the signature for a set of request parameters."""
    try:
        config = load_config()
        if not config.api_secret:
            raise ConfigError("Must supply api_secret")
        signature = sign_parameters(parse_pairs(params), config.api_secret, config.signature_algorithm)
        console.print(signature, soft_wrap=True, markup=False, highlight=False)
    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)


@app.command()
def token(
    acl: Optional[str] = typer.Option(None, "--acl", "-a", help="ACL path pattern, e.g. /image/*"),
    token_url: Optional[str] = typer.Option(None, "--url", "-u", help="URL path to sign"),
    duration: Optional[int] = typer.Option(None, "--duration", "-d", help="Seconds of validity"),
    expiration: Optional[int] = typer.Option(None, "--expiration", "-e", help="Unix expiration time"),
    start_time: Optional[int] = typer.Option(None, "--start-time", help="Unix start time"),
    ip: Optional[str] = typer.Option(None, "--ip", help="Restrict to a client IP"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Hex token key (default: configured key)"),
) -> None:
    """Print an auth token query string."""
    try:
        overrides = AuthToken(
            key=key,
            acl=acl,
            duration=duration,
            expiration=expiration,
            start_time=start_time,
            ip=ip,
        )
        if key is None:
            base = load_config().auth_token or AuthToken()
            overrides = base.merge(overrides)

        console.print(overrides.generate(token_url), soft_wrap=True, markup=False, highlight=False)

    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)
    except MediaError as e:
        print_error(f"Could not generate token: {e}")
        raise typer.Exit(1)


@app.command()
def upload(
    files: list[Path] = typer.Argument(
        ...,
        help="Files or folders to upload",
        exists=True,
    ),
    public_id: Optional[str] = typer.Option(
        None,
        "--public-id",
        "-p",
        help="Public ID (single file only)",
    ),
    folder: Optional[str] = typer.Option(
        None,
        "--folder",
        "-F",
        help="Destination folder",
    ),
    tags: Optional[str] = typer.Option(
        None,
        "--tags",
        "-t",
        help="Comma separated tags",
    ),
    resource_type: str = typer.Option(
        "image",
        "--resource-type",
        "-r",
        help="image|video|raw|auto",
    ),
    chunk_size: Optional[int] = typer.Option(
        None,
        "--chunk-size",
        "-c",
        help="Chunk size in bytes for large files (default: configured)",
        min=1,
    ),
    output_format: str = typer.Option(
        "plain",
        "--output-format",
        "-o",
        help="Output format: plain|markdown|html",
    ),
) -> None:
    """Upload files, chunking those larger than the chunk size."""
    try:
        client = MediaClient(load_config())
        chunk_size = chunk_size or client.config.chunk_size

        expanded_files = expand_paths(files)
        if not expanded_files:
            console.print("[yellow]No files found[/yellow]")
            raise typer.Exit(0)
        if public_id and len(expanded_files) > 1:
            print_error("--public-id can only be used with a single file")
            raise typer.Exit(1)

        options = {
            "public_id": public_id,
            "folder": folder,
            "tags": tags.split(",") if tags else None,
            "resource_type": resource_type,
        }

        results: list[tuple[Path, UploadResult]] = []

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:

            task = progress.add_task("[cyan]Uploading files...", total=len(expanded_files))

            for file_path in expanded_files:
                progress.update(task, description=f"[cyan]Uploading {file_path.name}...")

                try:
                    if file_path.stat().st_size > chunk_size:
                        result = client.upload_large(file_path, chunk_size=chunk_size, **options)
                    else:
                        result = client.upload(file_path, **options)
                except MediaError as e:
                    print_error(f"Failed to upload {file_path.name}: {e}")
                else:
                    if result.ok:
                        results.append((file_path, result))
                    else:
                        print_error(f"Failed to upload {file_path.name}: {result.error}")

                progress.advance(task)

        if not results:
            console.print("[yellow]No files were uploaded[/yellow]")
            raise typer.Exit(1)

        table = Table(title="Uploaded Files")
        table.add_column("File", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Public ID")
        table.add_column("URL", style="green")

        for file_path, result in results:
            table.add_row(file_path.name, format_file_size(file_path.stat().st_size), result.public_id, result.url)

        console.print(table)

        output = format_output([r for _, r in results], output_format)
        console.print("\n[bold green]Upload complete![/bold green]\n")
        console.print(output, soft_wrap=True, markup=False, highlight=False)

        if copy_to_clipboard(output):
            console.print(f"\n[dim]{len(results)} URL(s) copied to clipboard[/dim]")

    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)


@app.command()
def verify(
    public_id: str = typer.Argument(..., help="Public ID from the upload response"),
    version: str = typer.Argument(..., help="Version from the upload response"),
    signature: str = typer.Argument(..., help="Signature from the upload response"),
) -> None:
    """Verify the signature of an upload response."""
    try:
        client = MediaClient(load_config())
        if client.verify_api_response_signature(public_id, version, signature):
            print_success("Signature is valid")
        else:
            print_error("Signature does not match")
            raise typer.Exit(1)
    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)


def main() -> None:
    """Main entry point for the CLI."""
    setup_logging()
    app()


if __name__ == "__main__":
    main()
