"""
ConsoleUI - Rich-based cycle summaries on stderr.

stdout carries the JSON envelopes; everything human-facing goes to stderr.
"""

from typing import Optional

from rich.console import Console
from rich.table import Table
from rich import box

from ..protocol.record import CollectionRecord


STATUS_STYLES = {
    "ok": "green",
    "failed": "red",
}


class ConsoleUI:
    """
    Rich console interface for sql_insight.
    """

    def __init__(self, quiet: bool = False, console: Optional[Console] = None):
        self.quiet = quiet
        self.console = console or Console(stderr=True)

    def print(self, *args, **kwargs):
        """Print to console."""
        if self.quiet:
            return
        self.console.print(*args, **kwargs)

    def print_error(self, message: str):
        self.console.print(f"[bold red]Error:[/] {message}")

    def print_record_summary(self, record: CollectionRecord):
        """One table per cycle: identity, level, attempts, warnings."""
        if self.quiet:
            return

        style = STATUS_STYLES.get(record.status, "white")
        table = Table(
            title=f"{record.run_id} cycle {record.cycle}",
            box=box.SIMPLE,
            show_header=False,
        )
        table.add_column("Field", style="dim")
        table.add_column("Value")

        table.add_row("Engine", record.engine)
        table.add_row("Status", f"[{style}]{record.status}[/]")
        table.add_row("Requested", record.requested_level)
        table.add_row("Selected", record.selected_level or "-")
        table.add_row("Window", f"{record.window.duration_ms} ms")
        table.add_row("Attempts", ", ".join(
            f"#{a.index} {a.status}" + (f" ({a.error})" if a.error else "")
            for a in record.attempts
        ))

        payload = record.payload or {}
        reasons = payload.get("downgrade_reasons") or []
        if reasons:
            table.add_row("Downgrade", "\n".join(reasons))

        level1 = payload.get("level1") or {}
        slow_log = level1.get("slow_log")
        if slow_log:
            table.add_row("Digests", str(slow_log.get("digest_count", 0)))
        error_log = level1.get("error_log")
        if error_log:
            counts = error_log.get("alert_counts", {})
            table.add_row("Alerts", ", ".join(f"{k}={v}" for k, v in counts.items()))

        if record.warnings:
            table.add_row("Warnings", f"[yellow]{len(record.warnings)}[/]")
        if record.error:
            table.add_row("Error", f"[red]{record.error}[/]")

        self.console.print(table)
