"""Config commands -- view and modify the executor defaults.

``restexec config`` (or ``restexec config show``) prints the effective
configuration after merging the user config, ``./restexec.json`` and the
``RESTEXEC_*`` environment variables.  ``set`` and ``reset`` only touch the
user config file.
"""

from __future__ import annotations

import json
from typing import Any

import typer

from restexec.output import OutputFormat, error, get_output, info, print_table


config_app = typer.Typer(invoke_without_command=True)


def _flatten(data: dict[str, Any], prefix: str = "") -> list[list[str]]:
    rows: list[list[str]] = []
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(_flatten(value, prefix=f"{name}."))
        else:
            rows.append([name, "" if value is None else str(value)])
    return rows


def _show() -> None:
    from restexec.config import get_config_dir, resolve_config
    from restexec.exceptions import ConfigError

    try:
        config = resolve_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Config directory: {get_config_dir()}")
    data = config.model_dump(mode="json")
    output = get_output()
    if output.format == OutputFormat.JSON:
        output.print_data(json.dumps(data, indent=2))
    else:
        print_table(["Key", "Value"], _flatten(data), title="restexec configuration")


@config_app.callback()
def config_callback(ctx: typer.Context) -> None:
    """Show or modify configuration. Without a sub-command, shows it."""
    if ctx.invoked_subcommand is None:
        _show()


@config_app.command("show")
def config_show() -> None:
    """Show the resolved configuration.

    Example::

        restexec config show
        restexec --json config show
    """
    _show()


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'capabilities.proxy')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a value in the user configuration file.

    The value is coerced to the type of the current field (bool or int) and
    the whole config is validated before it is saved.

    Raises:
        typer.Exit: With code 2 if the key is unknown or the value invalid.
    """
    from pydantic import ValidationError

    from restexec.config import load_global_config, save_global_config
    from restexec.exceptions import ConfigError
    from restexec.models import ExecutorConfig

    try:
        config = load_global_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    data = config.model_dump(mode="json")
    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Unknown config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = target[final_key]
    coerced: Any
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes", "on")
    elif isinstance(current, int):
        try:
            coerced = int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    elif value.lower() in ("", "none", "null"):
        coerced = None
    else:
        coerced = value

    target[final_key] = coerced

    try:
        new_config = ExecutorConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(new_config)
    info(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset the user configuration to defaults."""
    from restexec.config import save_global_config
    from restexec.models import ExecutorConfig

    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(ExecutorConfig())
    info("Configuration reset to defaults.")
