#!/usr/bin/env python3
"""Output formatting for PVE Resource Manager."""

import json
from typing import Any, Callable, Dict, List, Optional, Union

from rich.console import Console
from rich.prompt import Confirm
from tabulate import tabulate

from .records import ActionResult

IEC_UNITS = ('B', 'KiB', 'MiB', 'GiB', 'TiB', 'PiB')


def bytes_to_human(n: Union[int, float, None]) -> str:
    """Format a byte count with IEC units and two decimals."""
    value = float(n or 0)
    i = 0
    while value >= 1024.0 and i < len(IEC_UNITS) - 1:
        value /= 1024.0
        i += 1
    return f"{value:.2f} {IEC_UNITS[i]}"


def _default_dumps(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _format_cores(cores: Any) -> str:
    if cores is None:
        return 'N/A'
    if isinstance(cores, float) and cores.is_integer():
        return str(int(cores))
    return str(cores)


class OutputFormatter:
    """Format and display output in various formats."""

    def __init__(self, format_type: Optional[str] = None,
                 dumps: Optional[Callable[[Any], str]] = None):
        """Initialize formatter.

        Args:
            format_type: Output format (pretty or json). Defaults to pretty.
            dumps: JSON serializer; defaults to an indented json.dumps
        """
        self.format_type = (format_type or 'pretty').lower()
        self.dumps = dumps or _default_dumps
        self.console = Console()

    @property
    def is_json(self) -> bool:
        return self.format_type == 'json'

    def format_json(self, data: Union[List, Dict]) -> str:
        """Format data as JSON.

        Args:
            data: Data to format

        Returns:
            JSON string
        """
        return self.dumps(data)

    def error_payload(self, action: str, error: Union[BaseException, str], **extra: Any) -> str:
        """Build the JSON error payload returned instead of raising.

        Args:
            action: What was being attempted
            error: Exception or message
            **extra: Additional members, e.g. selector

        Returns:
            JSON object string with at least "error" and "action"
        """
        payload = {'error': str(error), 'action': action}
        payload.update(extra)
        try:
            return self.dumps(payload)
        except Exception:
            # Serializer failed; json.dumps escapes each member into a valid object
            members = ', '.join(f'{json.dumps(str(k))}: {json.dumps(str(v))}'
                                for k, v in payload.items())
            return '{' + members + '}'

    def format_table(self, data: List[Dict[str, Any]],
                     columns: Optional[List[str]] = None,
                     title: Optional[str] = None) -> str:
        """Format data as table.

        Args:
            data: List of dictionaries to display
            columns: Column names to include (default: all keys)
            title: Optional table title

        Returns:
            Formatted string
        """
        if not data:
            return "No data to display"

        if columns is None:
            columns = list(data[0].keys())

        headers = [col.replace('_', ' ').title() for col in columns]
        rows = [[row.get(col, '') for col in columns] for row in data]

        output = ""
        if title:
            output = f"{title}\n{'=' * len(title)}\n"
        output += tabulate(rows, headers=headers, tablefmt='grid')
        return output

    def render_action_results(self, title: str, results: List[ActionResult]) -> str:
        """Render batch results as text, one line per target."""
        lines = [title]
        for result in results:
            status = 'OK' if result.ok else 'FAIL'
            detail = result.message if result.ok else result.error
            suffix = f" - {detail}" if detail else ''
            lines.append(f"{status} {result.name} (ID: {result.vmid}, node: {result.node}){suffix}".rstrip())
        return '\n'.join(lines).strip()

    def render_container_list(self, rows: List[Dict[str, Any]]) -> str:
        """Render container rows (with optional stats) as text blocks."""
        lines = ['Containers']
        for row in rows:
            name = row.get('name') or f"ct-{row.get('vmid')}"
            lines.append('')
            lines.append(f"{name} (ID: {row.get('vmid')})")
            lines.append(f"  Status: {str(row.get('status') or 'N/A').upper()}")
            lines.append(f"  Node: {row.get('node') or 'N/A'}")
            if 'cpu_pct' not in row:
                continue
            lines.append(f"  CPU: {float(row.get('cpu_pct') or 0.0):.1f}%")
            lines.append(f"  CPU Cores: {_format_cores(row.get('cores'))}")

            mem_bytes = row.get('mem_bytes') or 0
            maxmem_bytes = row.get('maxmem_bytes') or 0
            if row.get('unlimited_memory'):
                lines.append(f"  Memory: {bytes_to_human(mem_bytes)} (unlimited)")
            elif maxmem_bytes > 0:
                mem_pct = row.get('mem_pct')
                pct = f" ({mem_pct:.1f}%)" if isinstance(mem_pct, (int, float)) else ''
                lines.append(f"  Memory: {bytes_to_human(mem_bytes)} / {bytes_to_human(maxmem_bytes)}{pct}")
            else:
                lines.append(f"  Memory: {bytes_to_human(mem_bytes)} / 0.00 B")
        return '\n'.join(lines).strip()

    def render_block(self, title: str, items: Dict[str, Any], footer: Optional[str] = None) -> str:
        """Render a titled block of indented "Label: value" lines."""
        lines = [title, '']
        for label, value in items.items():
            lines.append(f"  {label}: {value}")
        if footer:
            lines.append('')
            lines.append(footer)
        return '\n'.join(lines).strip()

    def print_success(self, message: str) -> None:
        """Print success message."""
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print error message."""
        self.console.print(f"[red]✗[/red] {message}", style="red")

    def print_warning(self, message: str) -> None:
        """Print warning message."""
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def print_info(self, message: str) -> None:
        """Print info message."""
        self.console.print(f"[blue]ℹ[/blue] {message}")

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask for user confirmation.

        Args:
            message: Confirmation message
            default: Default answer

        Returns:
            True if confirmed
        """
        return Confirm.ask(message, default=default, console=self.console)


# Default formatter instance
_formatter: Optional[OutputFormatter] = None


def get_formatter(format_type: Optional[str] = None) -> OutputFormatter:
    """Get formatter instance.

    Args:
        format_type: Output format type

    Returns:
        OutputFormatter instance
    """
    global _formatter
    if _formatter is None or format_type is not None:
        _formatter = OutputFormatter(format_type)
    return _formatter
