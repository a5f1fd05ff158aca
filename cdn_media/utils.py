"""Console and clipboard helpers for the cdn-media CLI."""

import pyperclip
from rich.console import Console

from .models import UploadResult


console = Console()

OUTPUT_TEMPLATES = {
    "plain": "{url}",
    "markdown": "![{public_id}]({url})",
    "html": '<img src="{url}" alt="{public_id}">',
}


def copy_to_clipboard(text: str) -> bool:
    """Copy text to the system clipboard, returning False when no clipboard is available."""
    try:
        pyperclip.copy(text)
        return True
    except pyperclip.PyperclipException:
        return False


def format_output(results: list[UploadResult], format_type: str) -> str:
    """Render one line per uploaded asset.

    Args:
        results: Successful upload results
        format_type: plain, markdown or html; unknown values fall back to plain

    Returns:
        Newline-separated delivery URLs in the requested format
    """
    template = OUTPUT_TEMPLATES.get(format_type, OUTPUT_TEMPLATES["plain"])
    return "\n".join(template.format(url=r.url, public_id=r.public_id) for r in results)


def format_file_size(size_bytes: float) -> str:
    """Human-readable size, e.g. "1.5 MB"."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"


def _print_status(mark: str, message: str) -> None:
    console.print(f"{mark} {message}")


def print_success(message: str) -> None:
    _print_status("[green]✓[/green]", message)


def print_error(message: str) -> None:
    _print_status("[red]✗[/red]", message)


def print_warning(message: str) -> None:
    _print_status("[yellow]![/yellow]", message)
