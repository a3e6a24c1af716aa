import atexit
import typer
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from ionhost.cli.formatter import OutputFormatter
from ionhost.config.loader import load_config
from ionhost.core.events import APP_READY, APP_SHUTDOWN, Event, ListenerFunc
from ionhost.core.models import IonSettings
from ionhost.provisioning.electron import ELECTRON_DIRECTORY, ELECTRON_VERSION, electron_bundle
from ionhost.provisioning.fingerprint import fingerprint_tree
from ionhost.provisioning.status import load_status
from ionhost.runtime.controller import Ion
from ionhost.utils.diagnostics import FingerprintError, IonError
from ionhost.utils.logging import configure_logging, get_logger

app = typer.Typer(name="ionhost", help="ionhost CLI Interface", rich_markup_mode=None)

CONFIG_FILE_NAME = "ionhost.yaml"

_CONFIG_FLAGS = ("--config", "-c")
_ROOT_FLAGS = ("--root", "-r")
_SEED_FLAGS = ("--seed", "-s")


def _read_option_value(tokens: list[str], index: int, option_name: str) -> tuple[str, int]:
    if index + 1 >= len(tokens):
        raise typer.BadParameter(f"Option {option_name} requires a value.")
    return tokens[index + 1], index + 2


def _parse_options(tokens: List[str], options: Dict[str, Tuple[str, ...]]) -> Tuple[Dict[str, str], List[str]]:
    """
    Split raw command tokens into option values (keyed like `options`) and
    positional arguments. Unknown options are rejected.
    """
    values: Dict[str, str] = {}
    positionals: List[str] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        for key, flags in options.items():
            if token in flags:
                values[key], index = _read_option_value(tokens, index, token)
                break
            if token.startswith(f"{flags[0]}="):
                values[key] = token.split("=", 1)[1]
                index += 1
                break
        else:
            if token.startswith("-"):
                raise typer.BadParameter(f"Unknown option: {token}")
            positionals.append(token)
            index += 1
    return values, positionals


def _reject_extras(extras: List[str]) -> None:
    if extras:
        raise typer.BadParameter(f"Unexpected arguments: {' '.join(extras)}")


def _load_settings(config_value: Optional[str]) -> IonSettings:
    config_path = Path(config_value) if config_value else Path(CONFIG_FILE_NAME)
    try:
        return IonSettings.from_config_dict(load_config(config_path))
    except ValidationError as exc:
        OutputFormatter.log(f"Invalid configuration in {config_path}: {exc}", severity="error")
        raise typer.Exit(code=1)


def _provisioning_root(settings: IonSettings, root_value: Optional[str]) -> Path:
    root = Path(root_value) if root_value else Path(settings.provisioning.path)
    return root.expanduser().resolve()


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def status(
    ctx: typer.Context,
):
    """Show the Electron deployment status and whether the tree is intact."""
    values, extras = _parse_options(list(ctx.args), {"config": _CONFIG_FLAGS, "root": _ROOT_FLAGS})
    _reject_extras(extras)

    settings = _load_settings(values.get("config"))
    target = _provisioning_root(settings, values.get("root")) / ELECTRON_DIRECTORY
    expected = settings.provisioning.electron_version or ELECTRON_VERSION
    recorded = load_status(target)

    intact = False
    if recorded.version:
        try:
            intact = fingerprint_tree(target, seed=settings.ion.app_name) == recorded.fingerprint
        except FingerprintError as exc:
            OutputFormatter.log(str(exc), severity="warning")
    else:
        OutputFormatter.log(f"No deployment recorded at {target}", severity="warning")

    OutputFormatter.print_data(
        {
            "target": str(target),
            "version": recorded.version,
            "expected_version": expected,
            "fingerprint": f"{recorded.fingerprint:016x}",
            "intact": intact,
            "current": intact and recorded.version == expected,
        }
    )


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def fingerprint(
    ctx: typer.Context,
):
    """Print the fingerprint of a directory tree."""
    values, paths = _parse_options(list(ctx.args), {"seed": _SEED_FLAGS})
    if len(paths) != 1:
        raise typer.BadParameter("Expected exactly one PATH argument.")

    try:
        value = fingerprint_tree(Path(paths[0]), seed=values.get("seed", ""))
    except FingerprintError as exc:
        OutputFormatter.log(f"Error: {exc}", severity="error")
        raise typer.Exit(code=1)

    OutputFormatter.print_data(f"{value:016x}")


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def provision(
    ctx: typer.Context,
):
    """Deploy the Electron runtime into the provisioning directory."""
    values, extras = _parse_options(list(ctx.args), {"config": _CONFIG_FLAGS, "root": _ROOT_FLAGS})
    _reject_extras(extras)

    settings = _load_settings(values.get("config"))
    configure_logging(settings.ion.log_level)
    root = _provisioning_root(settings, values.get("root"))

    try:
        result = electron_bundle(settings).provision(root, seed=settings.ion.app_name, logger=get_logger("cli"))
    except IonError as exc:
        OutputFormatter.log(f"Provisioning failed: {exc}", severity="error")
        raise typer.Exit(code=1)

    OutputFormatter.print_provision_results([result])
    OutputFormatter.log(f"Electron {result.version} ready at {result.target}", severity="success")


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def run(
    ctx: typer.Context,
):
    """Provision and launch the companion process, then wait for it to stop."""
    values, extras = _parse_options(list(ctx.args), {"config": _CONFIG_FLAGS, "root": _ROOT_FLAGS})
    _reject_extras(extras)

    settings = _load_settings(values.get("config"))
    if not settings.runtime.script:
        OutputFormatter.log(
            "runtime.script is not set: Electron needs an entry script that connects back "
            "to the address passed as its last argument.",
            severity="error",
        )
        raise typer.Exit(code=1)

    logger = configure_logging(settings.ion.log_level)
    root = _provisioning_root(settings, values.get("root"))

    ion = Ion(electron_bundle(settings), settings, provisioning_path=root, logger=logger)

    def log_event(event: Event) -> None:
        logger.info("Received %s %s", event, event.payload)

    ion.dispatcher.add_listener(ListenerFunc(log_event), False, APP_READY, APP_SHUTDOWN)
    atexit.register(ion.shutdown)

    try:
        ion.start()
    except IonError as exc:
        OutputFormatter.log(f"Startup failed: {exc}", severity="error")
        raise typer.Exit(code=1)

    OutputFormatter.print_provision_results(ion.provision_results)
    OutputFormatter.log(f"{settings.ion.app_name} connected on {ion.address}", severity="success")

    try:
        ion.wait()
    except KeyboardInterrupt:
        OutputFormatter.log("Interrupted. Shutting down.", severity="info")
        ion.shutdown()
        ion.wait()


if __name__ == "__main__":
    app()
