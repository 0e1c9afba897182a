"""Rich console summary of a scheduler pass."""

import logging

from rich.console import Console
from rich.table import Table

from pigeon.models import CycleReport

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLES = {
    "ok": "green",
    "duplicate": "dim",
    "no-prompts": "yellow",
    "nothing-to-upload": "yellow",
    "failed": "red",
}


def _short_source(source: str, max_len: int = 48) -> str:
    if len(source) <= max_len:
        return source
    return source[: max_len - 3] + "..."


def build_pass_table(reports: list[CycleReport]) -> Table:
    table = Table(title="Pass summary", show_lines=False)
    table.add_column("Source")
    table.add_column("Set", justify="right")
    table.add_column("Status")
    table.add_column("Items", justify="right")
    table.add_column("Generated", justify="right")
    table.add_column("Kept", justify="right")
    table.add_column("Rejected", justify="right")
    table.add_column("Uploaded", justify="right")
    table.add_column("Scores", justify="right")
    table.add_column("Error")

    for r in reports:
        style = _STATUS_STYLES.get(r.status, "")
        table.add_row(
            _short_source(r.source),
            str(r.prompt_set_id),
            f"[{style}]{r.status}[/{style}]" if style else r.status,
            str(r.collected),
            str(r.generated),
            str(r.kept),
            str(r.rejected),
            str(r.uploaded_prompts),
            str(r.uploaded_scores),
            (r.error or "")[:60],
        )
    return table


def print_pass_summary(reports: list[CycleReport]) -> None:
    """Print one row per source processed in the pass."""
    console.print(build_pass_table(reports))
