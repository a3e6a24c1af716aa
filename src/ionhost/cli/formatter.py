import json
import typer
from typing import Any, List
from pydantic import BaseModel
from rich.table import Table
from ionhost.provisioning.provisioner import ProvisionResult
from ionhost.utils.logging import error_console

class OutputFormatter:
    """
    Handles output formatting for the CLI.
    System messages go to stderr; data goes to stdout.
    """

    @staticmethod
    def log(message: str, severity: str = "info") -> None:
        """
        Print system messages to stderr with color coding.
        """
        style = "white"
        prefix = "[ION]"

        if severity == "warning":
            style = "yellow"
        elif severity == "error":
            style = "red"
        elif severity == "success":
            style = "green"

        error_console.print(f"[{style}]{prefix} {message}[/{style}]", highlight=False)

    @staticmethod
    def print_provision_results(results: List[ProvisionResult]) -> None:
        """
        Summarize provisioning outcomes as a table on stderr.
        """
        if not results:
            return

        table = Table(title="Provisioning", header_style="bold")
        table.add_column("Target")
        table.add_column("Version", no_wrap=True)
        table.add_column("Fingerprint", no_wrap=True)
        table.add_column("Outcome", no_wrap=True)

        for result in results:
            outcome = "[green]reused[/green]" if result.reused else "[yellow]deployed[/yellow]"
            table.add_row(str(result.target), result.version, f"{result.fingerprint:016x}", outcome)

        error_console.print(table)

    @staticmethod
    def print_data(data: Any) -> None:
        """
        Print a result to stdout as JSON (strings are echoed as-is).
        """
        if isinstance(data, str):
            typer.echo(data)
            return

        def json_serializer(obj):
            if isinstance(obj, BaseModel):
                return obj.model_dump(mode='json')
            return str(obj)

        typer.echo(json.dumps(data, indent=2, default=json_serializer))
