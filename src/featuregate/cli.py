"""featuregate CLI for managing features and flags - Tyro implementation."""

import asyncio
import json
import logging
import shutil
import sys
from builtins import print as builtin_print
from pathlib import Path
from typing import Annotated, Any, Literal

import attrs
import tyro
from rich import print
from rich.box import ROUNDED
from rich.console import Console
from rich.table import Table

from featuregate.config import CONFIG_FILENAME, FeatureGateConfig, find_config_dir, set_config_instance
from featuregate.models import Session
from featuregate.pipeline.executor import describe_spec
from featuregate.registry import FeatureRegistry
from featuregate.results import OperationResult, to_plain
from featuregate.utils import get_templates_dir

logger = logging.getLogger(__name__)


# Subcommand definitions using attrs
@attrs.define
class Install:
    """Install a template featuregate.yaml into the configuration directory."""

    force: bool = False
    """Overwrite existing configuration."""


@attrs.define
class InitDb:
    """Create the feature and featureFlag tables."""


@attrs.define
class FeatureList:
    """List all features, newest first."""

    json: Annotated[bool, tyro.conf.arg(aliases=["-j"])] = False
    """Output as JSON."""


@attrs.define
class FeatureCreate:
    """Create a feature."""

    name: Annotated[str, tyro.conf.Positional]
    """Unique feature slug."""

    display_name: Annotated[str, tyro.conf.arg(aliases=["-n"])]
    """Human readable name."""

    description: Annotated[str | None, tyro.conf.arg(aliases=["-d"])] = None
    """Optional description."""

    inactive: bool = False
    """Create the feature globally inactive."""

    json: Annotated[bool, tyro.conf.arg(aliases=["-j"])] = False
    """Output as JSON."""


@attrs.define
class FeatureUpdate:
    """Update a feature's display name, description or active switch."""

    feature_id: Annotated[str, tyro.conf.Positional]
    """Feature id."""

    display_name: Annotated[str | None, tyro.conf.arg(aliases=["-n"])] = None
    """New display name."""

    description: Annotated[str | None, tyro.conf.arg(aliases=["-d"])] = None
    """New description."""

    active: bool | None = None
    """New global active switch."""

    json: Annotated[bool, tyro.conf.arg(aliases=["-j"])] = False
    """Output as JSON."""


@attrs.define
class FeatureToggle:
    """Turn a feature's global switch on or off."""

    feature_id: Annotated[str, tyro.conf.Positional]
    """Feature id."""

    state: Annotated[Literal["on", "off"], tyro.conf.Positional]
    """on or off."""

    json: Annotated[bool, tyro.conf.arg(aliases=["-j"])] = False
    """Output as JSON."""


@attrs.define
class FeatureDelete:
    """Delete a feature together with all of its flags."""

    feature_id: Annotated[str, tyro.conf.Positional]
    """Feature id."""


@attrs.define
class FlagSet:
    """Create the flag for a principal (organization or user) and a feature."""

    principal_id: Annotated[str, tyro.conf.Positional]
    """Organization or user id, depending on the configured principal mode."""

    feature_id: Annotated[str, tyro.conf.Positional]
    """Feature id."""

    disabled: bool = False
    """Create the flag with enabled=false."""

    json: Annotated[bool, tyro.conf.arg(aliases=["-j"])] = False
    """Output as JSON."""


@attrs.define
class FlagRemove:
    """Remove the flag for a principal and a feature."""

    principal_id: Annotated[str, tyro.conf.Positional]
    """Organization or user id."""

    feature_id: Annotated[str, tyro.conf.Positional]
    """Feature id."""


@attrs.define
class FlagList:
    """List the live flags of a principal."""

    principal_id: Annotated[str, tyro.conf.Positional]
    """Organization or user id."""

    json: Annotated[bool, tyro.conf.arg(aliases=["-j"])] = False
    """Output as JSON."""


@attrs.define
class Available:
    """List the features live for the calling user."""

    json: Annotated[bool, tyro.conf.arg(aliases=["-j"])] = False
    """Output as JSON."""


@attrs.define
class Hooks:
    """Show the configured hook table."""

    json: Annotated[bool, tyro.conf.arg(aliases=["-j"])] = False
    """Output as JSON."""


# Type alias for all subcommands
Command = (
    Annotated[Install, tyro.conf.subcommand(name="install")]
    | Annotated[InitDb, tyro.conf.subcommand(name="init-db")]
    | Annotated[FeatureList, tyro.conf.subcommand(name="feature-list")]
    | Annotated[FeatureCreate, tyro.conf.subcommand(name="feature-create")]
    | Annotated[FeatureUpdate, tyro.conf.subcommand(name="feature-update")]
    | Annotated[FeatureToggle, tyro.conf.subcommand(name="feature-toggle")]
    | Annotated[FeatureDelete, tyro.conf.subcommand(name="feature-delete")]
    | Annotated[FlagSet, tyro.conf.subcommand(name="flag-set")]
    | Annotated[FlagRemove, tyro.conf.subcommand(name="flag-remove")]
    | Annotated[FlagList, tyro.conf.subcommand(name="flag-list")]
    | Annotated[Available, tyro.conf.subcommand(name="available")]
    | Annotated[Hooks, tyro.conf.subcommand(name="hooks")]
)

# Commands that go through the registry
OperationCommand = (
    FeatureList
    | FeatureCreate
    | FeatureUpdate
    | FeatureToggle
    | FeatureDelete
    | FlagSet
    | FlagRemove
    | FlagList
    | Available
)

FEATURE_COLUMNS = ["id", "name", "displayName", "active", "description", "createdAt"]
FLAG_COLUMNS = ["id", "feature", "principal", "enabled", "updatedAt"]


def setup_logging() -> None:
    """Configure logging with 100-character text width."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)-20s - %(levelname)-8s - %(message).100s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def install_config(config_dir: Path, force: bool = False) -> None:
    """Install the featuregate.yaml template.

    Args:
        config_dir: Directory to install the configuration file to
        force: Whether to overwrite an existing configuration
    """
    dst = config_dir / CONFIG_FILENAME
    if dst.exists() and not force:
        print(f"Configuration file {dst} already exists.")
        print("Use --force to overwrite existing configuration.")
        sys.exit(1)

    try:
        templates_dir = get_templates_dir()
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    config_dir.mkdir(parents=True, exist_ok=True)
    shutil.copy2(templates_dir / CONFIG_FILENAME, dst)
    print(f"Installed {CONFIG_FILENAME} to: {config_dir}")
    print("\nNext steps:")
    print(f"  1. Edit {dst} to set database_url and hooks")
    print("  2. Create the tables with: featuregate init-db")


def require_database_url(config: FeatureGateConfig) -> str:
    """Return the configured database URL or exit with a hint."""
    database_url = config.get_database_url()
    if not database_url:
        console = Console(stderr=True)
        console.print("[red]Error:[/red] No database_url configured")
        console.print(f"Set featuregate.database_url in {CONFIG_FILENAME}")
        console.print("Or set FEATUREGATE_DATABASE_URL or DATABASE_URL environment variable")
        sys.exit(1)
    return database_url


async def init_db(database_url: str) -> None:
    from featuregate.store.postgres import PostgresStore

    async with PostgresStore(database_url) as store:
        await store.create_schema()


async def dispatch(registry: FeatureRegistry, cmd: OperationCommand, session: Session | None) -> OperationResult:
    """Run the registry operation behind a command.

    Args:
        registry: Feature registry
        cmd: Parsed command
        session: Session of the acting user, None when --as-user is not given

    Returns:
        The operation's result
    """
    if isinstance(cmd, FeatureList):
        return await registry.list_features(session)
    if isinstance(cmd, FeatureCreate):
        return await registry.create_feature(
            session,
            {
                "name": cmd.name,
                "displayName": cmd.display_name,
                "description": cmd.description,
                "active": not cmd.inactive,
            },
        )
    if isinstance(cmd, FeatureUpdate):
        patch: dict[str, Any] = {}
        if cmd.display_name is not None:
            patch["displayName"] = cmd.display_name
        if cmd.description is not None:
            patch["description"] = cmd.description
        if cmd.active is not None:
            patch["active"] = cmd.active
        return await registry.update_feature(session, cmd.feature_id, patch)
    if isinstance(cmd, FeatureToggle):
        return await registry.toggle_feature(session, cmd.feature_id, cmd.state == "on")
    if isinstance(cmd, FeatureDelete):
        return await registry.delete_feature(session, cmd.feature_id)
    if isinstance(cmd, FlagSet):
        return await registry.set_feature_flag(session, cmd.principal_id, cmd.feature_id, not cmd.disabled)
    if isinstance(cmd, FlagRemove):
        return await registry.remove_feature_flag(session, cmd.principal_id, cmd.feature_id)
    if isinstance(cmd, FlagList):
        return await registry.get_feature_flags(session, cmd.principal_id)
    if isinstance(cmd, Available):
        return await registry.get_available_features(session)
    raise TypeError(f"Unsupported command: {type(cmd).__name__}")


async def execute(config: FeatureGateConfig, cmd: OperationCommand, session: Session | None) -> OperationResult:
    from featuregate.store.postgres import PostgresStore

    async with PostgresStore(require_database_url(config)) as store:
        registry = FeatureRegistry.from_config(store, config)
        return await dispatch(registry, cmd, session)


def _flag_row(flag: dict[str, Any]) -> dict[str, Any]:
    feature = flag.get("feature") or {}
    return {
        "id": flag.get("id"),
        "feature": feature.get("name", flag.get("featureId")),
        "principal": flag.get("organizationId") or flag.get("userId"),
        "enabled": flag.get("enabled"),
        "updatedAt": flag.get("updatedAt"),
    }


def format_table(rows: list[dict], columns: list[str], console: Console) -> None:
    """Format records as Rich table with styling.

    Args:
        rows: List of row dictionaries
        columns: Column names in order
        console: Rich console for output
    """
    table = Table(
        box=ROUNDED,
        show_header=True,
        header_style="bold cyan",
        row_styles=["", "dim"],
        expand=False,
        caption=f"[dim]{len(rows)} row(s)[/dim]",
    )
    for col in columns:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*["" if row.get(c) is None else str(row.get(c)) for c in columns])
    console.print(table)


def render_result(result: OperationResult, as_json: bool = False) -> None:
    """Print an operation result, or its error to stderr and exit 1."""
    if not result.ok:
        Console(stderr=True).print(f"[red]Error:[/red] {result.error} [dim]({result.status})[/dim]")
        sys.exit(1)

    data = to_plain(result.data)
    if as_json:
        builtin_print(json.dumps(data, indent=2, default=str))
        return

    console = Console()
    if isinstance(data, list):
        if not data:
            console.print("[dim]No results[/dim]")
        elif "feature" in data[0]:
            format_table([_flag_row(f) for f in data], FLAG_COLUMNS, console)
        else:
            format_table(data, FEATURE_COLUMNS, console)
    elif isinstance(data, dict) and "feature" in data:
        format_table([_flag_row(data)], FLAG_COLUMNS, console)
    elif isinstance(data, dict) and "name" in data:
        format_table([data], FEATURE_COLUMNS, console)
    else:
        console.print("[green]OK[/green]")


def show_hooks(config: FeatureGateConfig, as_json: bool = False) -> None:
    """Display the hook table built from configuration."""
    table_data = config.load_hooks()

    def name(fn: Any) -> str | None:
        return f"{fn.__module__}.{fn.__qualname__}" if fn is not None else None

    if as_json:
        builtin_print(
            json.dumps(
                {op.value: {"before": name(spec.before), "after": name(spec.after)} for op, spec in table_data},
                indent=2,
            )
        )
        return

    console = Console()
    if not len(table_data):
        console.print("[dim]No hooks configured[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Operation", style="cyan")
    table.add_column("Before", style="green")
    table.add_column("After", style="yellow")
    for op, spec in table_data:
        table.add_row(describe_spec(op, spec), name(spec.before) or "-", name(spec.after) or "-")
    console.print(table)


def main(
    cmd: Annotated[Command, tyro.conf.arg(name="")],
    *,
    config_dir: Annotated[Path | None, tyro.conf.arg(help="Configuration directory")] = None,
    as_user: Annotated[str | None, tyro.conf.arg(help="Act as this user id")] = None,
    org: Annotated[str | None, tyro.conf.arg(help="Active organization id of the session")] = None,
) -> None:
    """featuregate - access-gated feature flags.

    Manage the global feature catalog and per-organization (or per-user)
    feature flags stored in PostgreSQL.
    """
    if config_dir is None:
        config_dir = find_config_dir()

    setup_logging()

    if isinstance(cmd, Install):
        install_config(config_dir, force=cmd.force)
        return

    config = FeatureGateConfig.from_yaml(config_dir / CONFIG_FILENAME)
    set_config_instance(config)
    if config.debug:
        logging.getLogger("featuregate").setLevel(logging.DEBUG)

    if isinstance(cmd, Hooks):
        show_hooks(config, as_json=cmd.json)
        return

    database_url = require_database_url(config)

    if isinstance(cmd, InitDb):
        try:
            asyncio.run(init_db(database_url))
        except Exception as e:
            Console(stderr=True).print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        print("[green]Schema created[/green]")
        return

    session = Session(user_id=as_user, active_organization_id=org) if as_user else None
    try:
        result = asyncio.run(execute(config, cmd, session))
    except Exception as e:
        Console(stderr=True).print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    render_result(result, as_json=getattr(cmd, "json", False))


def entry_point() -> None:
    """Entry point for the featuregate command."""
    # Rewrite "feature create" -> "feature-create" and "flag set" -> "flag-set" for tyro
    args = sys.argv[1:]

    groups = {
        "feature": {"list", "create", "update", "toggle", "delete"},
        "flag": {"set", "remove", "list"},
    }
    subcommands = {"install", "init-db", "available", "hooks"}

    for i, arg in enumerate(args):
        if arg in groups:
            if i + 1 < len(args) and args[i + 1] in groups[arg]:
                new_args = args[:i] + [f"{arg}-{args[i + 1]}"] + args[i + 2 :]
                sys.argv = [sys.argv[0]] + new_args
            break
        # Stop if we hit a different subcommand
        if arg in subcommands:
            break

    tyro.cli(main)


if __name__ == "__main__":
    entry_point()
