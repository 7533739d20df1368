"""Typer-powered command line interface for ``bblctl``.

The CLI owns everything around the command engine: configuration, the state
directory lock, loading the state, structured operation logging, console
output and exit codes. Lifecycle commands (``up``, ``destroy``, ``rotate``)
run their fast-fail checks and then their checkpointed sequence; read-only
commands print a single field of the recorded state.
"""
from __future__ import annotations

import json
import textwrap
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .commands import (
    Command,
    Destroy,
    DestroyArgs,
    Rotate,
    RotateArgs,
    Up,
    UpArgs,
)
from .config import AppConfig, ConfigError, load_config
from .exit_codes import ExitCode
from .locking import LockManager, LockTimeoutError
from .logging import OperationScope, StructuredLogger
from .managers import (
    BOSHCLIManager,
    BOSHManager,
    KeyPairManager,
    ManagerError,
    SSHKeyPairManager,
    TerraformCLIManager,
    TerraformManager,
)
from .state import (
    AWSConfig,
    AzureConfig,
    GCPConfig,
    State,
    StateStore,
    StateStoreError,
    StateValidator,
    ValidationError,
)

console = Console()

STATE_DIR_OPTION = typer.Option(
    None,
    "--state-dir",
    "-s",
    file_okay=False,
    dir_okay=True,
    help="Directory holding bbl-state.yml (defaults to the current directory).",
)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to bblctl's YAML config file.",
)

_SECRET_FIELDS = {
    "private_key",
    "secret_access_key",
    "service_account_key",
    "client_secret",
    "director_password",
    "director_ssl_private_key",
    "credentials",
    "state",
    "tf_state",
}
_REDACTED = "<redacted>"

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Bootstrap and manage infrastructure environments with a BOSH director.

        Lifecycle commands persist bbl-state.yml after every step, so a
        failed command can simply be re-run.
        """
    ).strip(),
)
state_app = typer.Typer(help="Inspect the recorded environment state.")
app.add_typer(state_app, name="state")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    store: StateStore
    validator: StateValidator
    locks: LockManager
    logger: StructuredLogger
    key_pair_manager: KeyPairManager
    terraform_manager: TerraformManager
    bosh_manager: BOSHManager


class ConsoleSteps:
    """Forward engine steps to the operation log and echo them to the console."""

    def __init__(self, op: OperationScope, *, debug: bool = False) -> None:
        """Wrap *op*; skipped steps are only echoed in debug mode."""
        self.op = op
        self.debug = debug

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record the step and print ``step: ...`` for the user."""
        self.op.add_step(name, status=status, detail=detail)
        if status == "skipped":
            if self.debug:
                console.print(f"[dim]step: skipped {name} ({detail})[/dim]")
            return
        console.print(f"step: {detail or name}")


def _ensure_runtime(
    ctx: typer.Context,
    *,
    state_dir: Path | None = None,
    config_file: Path | None = None,
    lock_timeout: float | None = None,
    debug: bool = False,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    overrides: dict[str, object] = {}
    if state_dir is not None:
        overrides["state_dir"] = str(state_dir)
    if lock_timeout is not None:
        overrides["lock_timeout"] = lock_timeout
    if debug:
        overrides["debug"] = True

    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc

    runtime = RuntimeContext(
        config=config,
        store=StateStore(config.state_dir),
        validator=StateValidator(),
        locks=LockManager(config.state_dir, config.lock_timeout),
        logger=StructuredLogger(config.logs_dir),
        key_pair_manager=SSHKeyPairManager(key_size=config.keypair.key_size),
        terraform_manager=TerraformCLIManager(
            working_dir=config.terraform_dir,
            terraform_bin=config.terraform.bin,
            min_version=config.terraform.min_version,
        ),
        bosh_manager=BOSHCLIManager(
            working_dir=config.bosh_dir,
            manifest=config.bosh.manifest,
            bosh_bin=config.bosh.bin,
        ),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the bblctl version and exit.",
    ),
    state_dir: Path | None = STATE_DIR_OPTION,
    config_file: Path | None = CONFIG_FILE_OPTION,
    lock_timeout: float | None = typer.Option(
        None,
        "--lock-timeout",
        help="Override lock acquisition timeout in seconds.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Print every step, including skipped ones.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"bblctl {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(
        ctx,
        state_dir=state_dir,
        config_file=config_file,
        lock_timeout=lock_timeout,
        debug=debug,
    )

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _run_lifecycle(
    runtime: RuntimeContext,
    name: str,
    build: Callable[[ConsoleSteps], Command[Any]],
    args: object,
    *,
    op_args: Mapping[str, object],
    confirm: Callable[[State], bool] | None = None,
) -> None:
    """Load state under the lock, run fast fails, then execute."""
    with runtime.logger.operation(
        name,
        args=op_args,
        target={"kind": "environment", "state_dir": runtime.config.state_dir},
    ) as op:
        try:
            with runtime.locks.state_lock() as handle:
                op.set_lock_wait_ms(handle.wait_ms)
                state = runtime.store.load()
                op.add_step("state.load", status="success", detail=state.env_id or "empty")
                command = build(ConsoleSteps(op, debug=runtime.config.debug))

                command.check_fast_fails(args, state)
                op.add_step("fast_fails", status="success")

                if confirm is not None and not confirm(state):
                    console.print("[yellow]Aborted.[/yellow]")
                    op.warning("Aborted by user.", warnings=["not confirmed"])
                    return

                command.execute(args, state)
                final = runtime.store.load()
        except LockTimeoutError as exc:
            _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)
        except ValidationError as exc:
            _command_error(op, str(exc), rc=ExitCode.VALIDATION)
        except StateStoreError as exc:
            _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)
        except ManagerError as exc:
            _command_error(op, str(exc), rc=ExitCode.PROVIDER)

        suffix = f" ({final.env_id})" if final.env_id else ""
        console.print(f"[green]{name} complete{suffix}[/green]")
        op.success(f"{name} complete.", changed=len(op.steps), context={"env_id": final.env_id})


def _read_key_material(value: str | None) -> str:
    """Return file contents when *value* names a file, else *value* itself."""
    if not value:
        return ""
    candidate = Path(value).expanduser()
    try:
        if candidate.is_file():
            return candidate.read_text(encoding="utf-8")
    except OSError:
        return value
    return value


@app.command()
def up(
    ctx: typer.Context,
    iaas: str | None = typer.Option(
        None, "--iaas", envvar="BBL_IAAS", help="IaaS to deploy on (aws|gcp|azure)."
    ),
    name: str | None = typer.Option(
        None, "--name", help="Environment name (generated when omitted)."
    ),
    no_director: bool = typer.Option(
        False, "--no-director", help="Provision infrastructure without a BOSH director."
    ),
    aws_access_key_id: str | None = typer.Option(
        None, "--aws-access-key-id", envvar="BBL_AWS_ACCESS_KEY_ID"
    ),
    aws_secret_access_key: str | None = typer.Option(
        None, "--aws-secret-access-key", envvar="BBL_AWS_SECRET_ACCESS_KEY"
    ),
    aws_region: str | None = typer.Option(None, "--aws-region", envvar="BBL_AWS_REGION"),
    gcp_service_account_key: str | None = typer.Option(
        None,
        "--gcp-service-account-key",
        envvar="BBL_GCP_SERVICE_ACCOUNT_KEY",
        help="Service account key JSON or a path to it.",
    ),
    gcp_project_id: str | None = typer.Option(
        None, "--gcp-project-id", envvar="BBL_GCP_PROJECT_ID"
    ),
    gcp_region: str | None = typer.Option(None, "--gcp-region", envvar="BBL_GCP_REGION"),
    gcp_zone: str | None = typer.Option(None, "--gcp-zone", envvar="BBL_GCP_ZONE"),
    azure_subscription_id: str | None = typer.Option(
        None, "--azure-subscription-id", envvar="BBL_AZURE_SUBSCRIPTION_ID"
    ),
    azure_tenant_id: str | None = typer.Option(
        None, "--azure-tenant-id", envvar="BBL_AZURE_TENANT_ID"
    ),
    azure_client_id: str | None = typer.Option(
        None, "--azure-client-id", envvar="BBL_AZURE_CLIENT_ID"
    ),
    azure_client_secret: str | None = typer.Option(
        None, "--azure-client-secret", envvar="BBL_AZURE_CLIENT_SECRET"
    ),
    azure_region: str | None = typer.Option(
        None, "--azure-region", envvar="BBL_AZURE_REGION"
    ),
) -> None:
    """Create or update the environment recorded in the state directory."""
    runtime = _get_runtime(ctx)
    args = UpArgs(
        iaas=(iaas or "").strip().lower(),
        name=(name or "").strip(),
        no_director=no_director,
        aws=AWSConfig(
            access_key_id=aws_access_key_id or "",
            secret_access_key=aws_secret_access_key or "",
            region=aws_region or "",
        ),
        gcp=GCPConfig(
            service_account_key=_read_key_material(gcp_service_account_key),
            project_id=gcp_project_id or "",
            region=gcp_region or "",
            zone=gcp_zone or "",
        ),
        azure=AzureConfig(
            subscription_id=azure_subscription_id or "",
            tenant_id=azure_tenant_id or "",
            client_id=azure_client_id or "",
            client_secret=azure_client_secret or "",
            region=azure_region or "",
        ),
    )

    def build(reporter: ConsoleSteps) -> Up:
        return Up(
            runtime.store,
            runtime.key_pair_manager,
            runtime.terraform_manager,
            runtime.bosh_manager,
            runtime.validator,
            reporter=reporter,
        )

    _run_lifecycle(
        runtime,
        "up",
        build,
        args,
        op_args={
            "iaas": args.iaas,
            "name": args.name,
            "no_director": no_director,
            "aws": args.aws.to_dict(),
            "gcp": args.gcp.to_dict(),
            "azure": args.azure.to_dict(),
        },
    )


@app.command()
def destroy(
    ctx: typer.Context,
    no_confirm: bool = typer.Option(
        False, "--no-confirm", "-n", help="Do not ask for confirmation."
    ),
    skip_if_missing: bool = typer.Option(
        False,
        "--skip-if-missing",
        help="Exit successfully when no environment is recorded.",
    ),
) -> None:
    """Delete the director, the infrastructure, and the state file."""
    runtime = _get_runtime(ctx)
    args = DestroyArgs(skip_if_missing=skip_if_missing)

    def build(reporter: ConsoleSteps) -> Destroy:
        return Destroy(
            runtime.store,
            runtime.terraform_manager,
            runtime.bosh_manager,
            runtime.validator,
            reporter=reporter,
        )

    def confirm(state: State) -> bool:
        if no_confirm or state.is_empty():
            return True
        return typer.confirm(
            f"Are you sure you want to delete infrastructure for {state.env_id}? "
            "This operation cannot be undone!",
            default=False,
        )

    _run_lifecycle(
        runtime,
        "destroy",
        build,
        args,
        op_args={"no_confirm": no_confirm, "skip_if_missing": skip_if_missing},
        confirm=confirm,
    )


@app.command()
def rotate(ctx: typer.Context) -> None:
    """Rotate the environment key pair and redeploy the director with it."""
    runtime = _get_runtime(ctx)

    def build(reporter: ConsoleSteps) -> Rotate:
        return Rotate(
            runtime.store,
            runtime.key_pair_manager,
            runtime.terraform_manager,
            runtime.bosh_manager,
            runtime.validator,
            reporter=reporter,
        )

    _run_lifecycle(runtime, "rotate", build, RotateArgs(), op_args={})


def _print_field(
    runtime: RuntimeContext,
    command: str,
    getter: Callable[[State], str],
    missing: str,
) -> None:
    with runtime.logger.operation(
        command,
        target={"kind": "environment", "state_dir": runtime.config.state_dir},
    ) as op:
        try:
            state = runtime.store.load()
        except StateStoreError as exc:
            _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)
        value = getter(state)
        if not value:
            _command_error(op, missing, rc=ExitCode.VALIDATION)
        typer.echo(value)
        op.success(f"Printed {command}.")


@app.command("env-id")
def env_id(ctx: typer.Context) -> None:
    """Print the environment identifier."""
    _print_field(
        _get_runtime(ctx),
        "env-id",
        lambda state: state.env_id,
        "Could not retrieve environment id; run `bblctl up` first.",
    )


@app.command("ssh-key")
def ssh_key(ctx: typer.Context) -> None:
    """Print the private key of the environment key pair."""
    _print_field(
        _get_runtime(ctx),
        "ssh-key",
        lambda state: state.key_pair.private_key,
        "Could not retrieve the ssh key; run `bblctl up` first.",
    )


@app.command("director-address")
def director_address(ctx: typer.Context) -> None:
    """Print the BOSH director address."""
    _print_field(
        _get_runtime(ctx),
        "director-address",
        lambda state: state.bosh.director_address,
        "Could not retrieve director address; this environment has no director.",
    )


@app.command("director-username")
def director_username(ctx: typer.Context) -> None:
    """Print the BOSH director username."""
    _print_field(
        _get_runtime(ctx),
        "director-username",
        lambda state: state.bosh.director_username,
        "Could not retrieve director username; this environment has no director.",
    )


@app.command("director-password")
def director_password(ctx: typer.Context) -> None:
    """Print the BOSH director password."""
    _print_field(
        _get_runtime(ctx),
        "director-password",
        lambda state: state.bosh.director_password,
        "Could not retrieve director password; this environment has no director.",
    )


def _redact_state(value: object, key: str = "") -> object:
    if key in _SECRET_FIELDS and value:
        return _REDACTED
    if isinstance(value, Mapping):
        return {str(name): _redact_state(item, str(name)) for name, item in value.items()}
    return value


@state_app.command("show")
def state_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Emit the state as JSON."),
) -> None:
    """Show the recorded state with secrets redacted."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "state show",
        args={"json": json_output},
        target={"kind": "environment", "state_dir": runtime.config.state_dir},
    ) as op:
        try:
            state = runtime.store.load()
        except StateStoreError as exc:
            _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)
        payload = _redact_state(state.to_dict())
        if json_output:
            typer.echo(json.dumps(payload, indent=2))
            op.success("Rendered state JSON.")
            return

        table = Table(title=f"bbl-state ({runtime.store.path})")
        table.add_column("Field")
        table.add_column("Value")
        table.add_row("env_id", state.env_id or "-")
        table.add_row("iaas", state.iaas or "-")
        table.add_row("no_director", "yes" if state.no_director else "no")
        table.add_row("key_pair", state.key_pair.name or "-")
        table.add_row("director", state.bosh.director_name or "-")
        table.add_row("director_address", state.bosh.director_address or "-")
        table.add_row("terraform", "applied" if state.tf_state else "-")
        console.print(table)
        op.success("Rendered state table.")


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["RuntimeContext", "app", "main"]
