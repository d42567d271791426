"""Typer command line for ``straylight``.

Every subcommand builds on one :class:`RuntimeContext` created by the root
callback. Tests inject their own context through ``CliRunner.invoke(...,
obj=runtime)`` so that the prompt and probe ports can be replaced.
"""
from __future__ import annotations

import os
import textwrap
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .atomic import AtomicWriter
from .cleaner import Cleaner
from .config import AppConfig, ConfigError, load_config
from .errors import IncompleteStageError, InstallerError
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger
from .paths import InstallPaths, PathResolver, resolve_home
from .phases import (
    CommitResult,
    Committer,
    FindingLevel,
    SnapshotManager,
    StageResult,
    Stager,
    Verifier,
    VerifyReport,
    latest_staging_area,
)
from .providers import ApiProbe, HttpApiProbe, InteractivePrompt, TerminalPrompt
from .recovery import RecoveryRecord, RollbackEngine, latest_recovery_record
from .shell import ShellIntegration
from .status import StatusReporter
from .templates import TemplateEngine

console = Console()
err_console = Console(stderr=True, soft_wrap=True)

READ_ONLY_COMMANDS = frozenset({"status", "help"})

USAGE_EXAMPLES = (
    ("oc-nitpick", "review this code"),
    ("oc-opus", "implement feature"),
    ("oc-gemini", "burn gcp credits"),
    ("oc-kimi", "bulk refactor (cheap)"),
)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    help="Path to an alternate installer settings file.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Install an OpenRouter key and opencode configuration in recoverable phases.

        With no command, runs snapshot, stage, entry and verify in order.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    env: Mapping[str, str]
    paths: InstallPaths
    resolver: PathResolver
    logger: StructuredLogger
    templates: TemplateEngine
    writer: AtomicWriter
    shell: ShellIntegration
    prompt: InteractivePrompt
    probe: ApiProbe | None


def build_runtime(
    config_file: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    prompt: InteractivePrompt | None = None,
    probe: ApiProbe | None = None,
    read_only: bool = False,
) -> RuntimeContext:
    """Resolve settings and locations and wire up every collaborator."""
    resolved_env = dict(os.environ if env is None else env)
    home = resolve_home(resolved_env)
    config = load_config(config_file=config_file, env=resolved_env, home=home)
    resolver = PathResolver(env=resolved_env, home=home, config=config)
    paths = resolver.resolve()
    logger = StructuredLogger.disabled() if read_only else StructuredLogger(paths.logs_dir)
    writer = AtomicWriter()
    templates = TemplateEngine.with_overrides(config.templates_dir, writer=writer)
    if probe is None and config.probe.enabled:
        probe = HttpApiProbe(
            base_url=config.provider.base_url,
            connect_timeout=config.probe.connect_timeout,
            total_timeout=config.probe.total_timeout,
        )
    return RuntimeContext(
        config=config,
        env=resolved_env,
        paths=paths,
        resolver=resolver,
        logger=logger,
        templates=templates,
        writer=writer,
        shell=ShellIntegration(templates=templates, writer=writer),
        prompt=prompt or TerminalPrompt(),
        probe=probe,
    )


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    *,
    read_only: bool = False,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    try:
        runtime = build_runtime(config_file, read_only=read_only)
    except InstallerError as exc:
        _fatal(str(exc), exc.exit_code)
    except ConfigError as exc:
        _fatal(str(exc), ExitCode.VALIDATION)
    except OSError as exc:
        _fatal(_describe_os_error(exc), ExitCode.ENVIRONMENT)
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the straylight version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"straylight {__version__}")
        raise typer.Exit(code=0)

    read_only = ctx.invoked_subcommand in READ_ONLY_COMMANDS
    _ensure_runtime(ctx, config_file, read_only=read_only)

    if ctx.invoked_subcommand is None:
        run(ctx)


def _fatal(message: str, rc: int) -> NoReturn:
    err_console.print(f"[red]error:[/red] {escape(message)}", highlight=False)
    raise typer.Exit(code=int(rc))


def _command_error(op: OperationScope, exc: InstallerError | OSError) -> NoReturn:
    """Emit a structured error and terminate the command.

    Errors raised by the filesystem itself exit with the environment code.
    """
    if isinstance(exc, InstallerError):
        rc = exc.exit_code
        message = str(exc)
    else:
        rc = ExitCode.ENVIRONMENT
        message = _describe_os_error(exc)
    op.error(message, errors=[message], rc=int(rc))
    _fatal(message, rc)


def _describe_os_error(exc: OSError) -> str:
    reason = exc.strerror or str(exc)
    if exc.filename2 is not None:
        return f"{reason}: {exc.filename} -> {exc.filename2}"
    if exc.filename is not None:
        return f"{reason}: {exc.filename}"
    return reason


def _warn(message: str) -> None:
    err_console.print(f"[yellow]warning:[/yellow] {escape(message)}", highlight=False)


def _finish(
    op: OperationScope,
    message: str,
    warnings: Sequence[str],
    *,
    changed: int = 0,
    backups: Sequence[str] | None = None,
    context: Mapping[str, object] | None = None,
) -> None:
    for warning in warnings:
        _warn(warning)
    if warnings:
        op.warning(
            message,
            warnings=list(warnings),
            changed=changed,
            backups=list(backups or []),
            context=dict(context or {}),
        )
    else:
        op.success(message, changed=changed, backups=list(backups or []), context=dict(context or {}))


def _target(runtime: RuntimeContext) -> dict[str, object]:
    return {
        "kind": "installation",
        "config": str(runtime.paths.config_file),
        "secret": str(runtime.paths.secret_file),
    }


def _do_snapshot(runtime: RuntimeContext, op: OperationScope, run_id: str) -> RecoveryRecord:
    record = SnapshotManager(runtime.paths, runtime.writer).take(run_id)
    console.print(f"[bold]snapshot[/bold]: state {record.path}")
    op.add_step("snapshot", detail=str(record.path))
    return record


def _do_stage(
    runtime: RuntimeContext,
    op: OperationScope,
    run_id: str,
    warnings: list[str],
) -> StageResult:
    stager = Stager(
        paths=runtime.paths,
        config=runtime.config,
        templates=runtime.templates,
        writer=runtime.writer,
        prompt=runtime.prompt,
        env=runtime.env,
    )
    result = stager.stage(run_id)
    console.print(
        f"[bold]stage[/bold]: {result.area.path} (key from {result.secret_source})"
    )
    if result.carried_keys:
        console.print(f"  kept existing keys: {', '.join(result.carried_keys)}")
    warnings.extend(result.warnings)
    op.add_step("stage", detail=f"{result.area.path} ({result.secret_source})")
    return result


def _do_entry(runtime: RuntimeContext, op: OperationScope, result: StageResult | None) -> CommitResult:
    area = result.area if result is not None else latest_staging_area(runtime.paths.staging_root)
    if area is None:
        raise IncompleteStageError(
            f"no staging area under {runtime.paths.staging_root}; run `straylight stage` first"
        )
    committed = Committer(runtime.paths, runtime.shell, runtime.writer).commit(area)
    for path in committed.installed:
        console.print(f"[bold]entry[/bold]: installed {path}")
    if committed.shell is not None:
        state = "appended" if committed.shell.appended else "already configured"
        console.print(f"[bold]entry[/bold]: shell {committed.shell.rc_file} {state}")
    op.add_step("entry", detail=", ".join(str(path) for path in committed.installed))
    return committed


def _do_verify(
    runtime: RuntimeContext,
    op: OperationScope,
    warnings: list[str],
    *,
    probe: bool = True,
) -> VerifyReport:
    verifier = Verifier(
        paths=runtime.paths,
        secret_variable=runtime.config.secret_variable,
        binary=runtime.config.binary,
        probe=runtime.probe if probe else None,
        search_path=runtime.env.get("PATH"),
    )
    report = verifier.verify()
    for finding in report.findings:
        if finding.level is FindingLevel.INFO:
            console.print(f"[bold]verify[/bold]: {finding.message}")
    warnings.extend(finding.message for finding in report.warnings)
    op.add_step("verify", status="warning" if report.warnings else "success")
    return report


def _print_next_steps(paths: InstallPaths) -> None:
    console.print()
    console.print(f"restart your shell or run: . {escape(str(paths.secret_file))}", soft_wrap=True)
    console.print("usage:")
    for alias, example in USAGE_EXAMPLES:
        console.print(f'  {alias} "{escape(example)}"', highlight=False)
    console.print("to undo: straylight abort")


@app.command()
def run(ctx: typer.Context) -> None:
    """Run snapshot, stage, entry and verify in order."""
    runtime = _get_runtime(ctx)
    warnings: list[str] = []
    with runtime.logger.operation("run", target=_target(runtime)) as op:
        try:
            run_id = runtime.resolver.new_run_id()
            record = _do_snapshot(runtime, op, run_id)
            staged = _do_stage(runtime, op, run_id, warnings)
            committed = _do_entry(runtime, op, staged)
            _do_verify(runtime, op, warnings)
        except (InstallerError, OSError) as exc:
            _command_error(op, exc)
        appended = committed.shell is not None and committed.shell.appended
        _finish(
            op,
            "Installation complete.",
            warnings,
            changed=len(committed.installed) + int(appended),
            backups=[str(record.path)],
            context={"run_id": run_id, "secret_source": staged.secret_source},
        )
        console.print("[green]done[/green]")
        _print_next_steps(runtime.paths)


@app.command()
def snapshot(ctx: typer.Context) -> None:
    """Record the current state of every managed file."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("snapshot", target=_target(runtime)) as op:
        try:
            record = _do_snapshot(runtime, op, runtime.resolver.new_run_id())
        except (InstallerError, OSError) as exc:
            _command_error(op, exc)
        _finish(op, "Snapshot recorded.", [], backups=[str(record.path)])


@app.command()
def stage(ctx: typer.Context) -> None:
    """Acquire the key and prepare artifacts without installing them."""
    runtime = _get_runtime(ctx)
    warnings: list[str] = []
    with runtime.logger.operation("stage", target=_target(runtime)) as op:
        try:
            latest = latest_recovery_record(runtime.paths.state_root)
            run_id = latest.run_id if latest is not None else runtime.resolver.new_run_id()
            result = _do_stage(runtime, op, run_id, warnings)
        except (InstallerError, OSError) as exc:
            _command_error(op, exc)
        _finish(op, "Artifacts staged.", warnings, context={"run_id": result.area.run_id})


@app.command()
def entry(ctx: typer.Context) -> None:
    """Install the newest staged artifacts and wire up the shell."""
    runtime = _get_runtime(ctx)
    warnings: list[str] = []
    with runtime.logger.operation("entry", target=_target(runtime)) as op:
        try:
            if latest_recovery_record(runtime.paths.state_root) is None:
                warnings.append("no recovery record exists; `straylight abort` will have nothing to restore")
            committed = _do_entry(runtime, op, None)
        except (InstallerError, OSError) as exc:
            _command_error(op, exc)
        _finish(
            op,
            "Artifacts installed.",
            warnings,
            changed=len(committed.installed),
            context={"run_id": committed.area.run_id},
        )


@app.command()
def verify(
    ctx: typer.Context,
    no_probe: bool = typer.Option(
        False,
        "--no-probe",
        help="Skip the connectivity check against the provider API.",
    ),
) -> None:
    """Check installed files, the API key and the opencode binary."""
    runtime = _get_runtime(ctx)
    warnings: list[str] = []
    with runtime.logger.operation(
        "verify", args={"no_probe": no_probe}, target=_target(runtime)
    ) as op:
        try:
            report = _do_verify(runtime, op, warnings, probe=not no_probe)
        except (InstallerError, OSError) as exc:
            _command_error(op, exc)
        _finish(op, "Verification finished.", warnings, context={"findings": report.codes()})


@app.command()
def abort(ctx: typer.Context) -> None:
    """Restore the state captured by the most recent snapshot."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("abort", target=_target(runtime)) as op:
        engine = RollbackEngine(runtime.paths, runtime.shell, runtime.writer)
        try:
            result = engine.abort()
        except (InstallerError, OSError) as exc:
            _command_error(op, exc)
        for path in result.restored:
            console.print(f"[bold]abort[/bold]: restored {path}")
        for path in result.removed:
            console.print(f"[bold]abort[/bold]: removed {path}")
        console.print(f"restored {result.restored_count} files from {result.record.path}")
        _finish(
            op,
            "Rollback complete.",
            result.warnings,
            changed=len(result.restored) + len(result.removed),
            backups=[str(result.record.path)],
        )


def _announce_removal(paths: Sequence[Path]) -> None:
    console.print("This will remove:")
    for path in paths:
        console.print(f"  {path}")
    console.print("  and the integration block in your shell startup files")


@app.command()
def clean(ctx: typer.Context) -> None:
    """Remove every file and directory straylight manages."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("clean", target=_target(runtime)) as op:
        cleaner = Cleaner(runtime.paths, runtime.prompt, runtime.shell)
        try:
            result = cleaner.clean(announce=_announce_removal)
        except (InstallerError, OSError) as exc:
            _command_error(op, exc)
        for path in result.removed_dirs:
            console.print(f"[bold]clean[/bold]: removed {path}")
        for path in result.cleaned_shell_files:
            console.print(f"[bold]clean[/bold]: removed integration block from {path}")
        _finish(
            op,
            "Clean complete.",
            [],
            changed=len(result.removed_dirs) + len(result.cleaned_shell_files),
        )


def _yes_no(value: bool) -> str:
    return "[green]yes[/green]" if value else "[red]no[/red]"


@app.command()
def status(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Emit the report as JSON."),
) -> None:
    """Show the current installation state without changing anything."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("status", args={"json": json_output}) as op:
        try:
            report = StatusReporter(runtime.paths, runtime.shell).report()
        except OSError as exc:
            _command_error(op, exc)
        if json_output:
            console.print_json(data=report.to_dict())
        else:
            table = Table(title=f"straylight {report.version}")
            table.add_column("Item")
            table.add_column("Value")
            table.add_row("config", f"{_yes_no(report.config_exists)} {report.config_file}")
            mode = f" ({report.secret_mode:04o})" if report.secret_mode is not None else ""
            table.add_row("secret", f"{_yes_no(report.secret_exists)} {report.secret_file}{mode}")
            table.add_row("state", f"{_yes_no(report.state_root_exists)} {report.state_root}")
            table.add_row("recovery records", str(report.recovery_records))
            table.add_row("latest record", report.latest_record or "-")
            table.add_row("shell", f"{_yes_no(report.shell_configured)} {report.shell_rc}")
            console.print(table)
        op.success("Reported status.", context=report.to_dict())


@app.command("help")
def help_command(ctx: typer.Context) -> None:
    """Show usage information."""
    console.print(ctx.find_root().get_help())


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["RuntimeContext", "app", "build_runtime", "main"]
