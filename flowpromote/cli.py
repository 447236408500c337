"""Command line interface for promoting, backing up and releasing workflows."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Awaitable, Callable, Iterator, List, NoReturn, Optional, Sequence, TypeVar

import typer

from . import remote
from .audit import BackupAuditor, VerificationReport, WorkflowValidator
from .backup import BackupEngine
from .config import Environment, FlowPromoteConfig, load_config
from .errors import FlowPromoteError
from .models import summarize
from .promotion import PromotionEngine
from .release import ReleaseCoordinator
from .remote import WorkflowClient

T = TypeVar("T")

app = typer.Typer(help="Promote, back up and release automation workflows")
release_app = typer.Typer(help="Commands for versioned workflow releases")
app.add_typer(release_app, name="release")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to the flowpromote YAML configuration"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """flowpromote CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    with _errors():
        ctx.obj = load_config(config)


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@contextmanager
def _errors() -> Iterator[None]:
    try:
        yield
    except FlowPromoteError as exc:
        _fail(f"Error: {exc}")


def _run(config: FlowPromoteConfig, operation: Callable[[WorkflowClient], Awaitable[T]]) -> T:
    """Run ``operation`` against the configured client and close it afterwards."""

    async def runner() -> T:
        client = remote.get_client(config)
        try:
            return await operation(client)
        finally:
            await client.aclose()

    with _errors():
        return asyncio.run(runner())


def _promotion(config: FlowPromoteConfig, client: WorkflowClient) -> PromotionEngine:
    return PromotionEngine(config, client, backups=BackupEngine(config, client))


def _report_batch(results: Sequence, label: str) -> None:
    counts = summarize(results)
    for result in results:
        if result.status == "failed":
            typer.secho(f"  failed: {result.error}", fg=typer.colors.RED)
    colour = typer.colors.GREEN if counts.failed == 0 else typer.colors.YELLOW
    typer.secho(
        f"{label}: {counts.total} total, {counts.successful} successful, {counts.failed} failed",
        fg=colour,
    )
    if counts.failed:
        raise typer.Exit(code=1)


@app.command("export")
def export_cmd(
    ctx: typer.Context,
    environment: Environment,
    base_names: Optional[List[str]] = typer.Argument(None),
) -> None:
    """Export managed workflows of ENVIRONMENT to the workflows directory."""
    config = ctx.obj
    results = _run(config, lambda c: _promotion(config, c).export(environment, base_names))
    for result in results:
        if result.status == "success":
            typer.echo(f"{result.name} -> {result.file_name}")
    _report_batch(results, "Export")


@app.command("import")
def import_cmd(
    ctx: typer.Context,
    environment: Environment,
    base_names: Optional[List[str]] = typer.Argument(None),
    version: Optional[str] = typer.Option(None, help="Version to inject into prod imports"),
) -> None:
    """Import exported workflow files into ENVIRONMENT."""
    config = ctx.obj
    results = _run(
        config,
        lambda c: _promotion(config, c).import_workflows(environment, base_names, version),
    )
    for result in results:
        if result.status == "success":
            typer.echo(f"{result.workflow_name}: {result.action}")
    _report_batch(results, "Import")


@app.command("deploy")
def deploy_cmd(
    ctx: typer.Context,
    base_names: List[str],
    version: Optional[str] = typer.Option(None, help="Release version recorded in prod"),
) -> None:
    """
    Promote dev workflows to production.

    Example:
        flowpromote deploy "Order Sync" --version v1.2.0
    """
    config = ctx.obj
    results = _run(config, lambda c: _promotion(config, c).deploy(base_names, version))
    for result in results:
        if result.status == "success":
            typer.echo(f"{result.dev_name} -> {result.prod_name} ({result.action})")
    _report_batch(results, "Deploy")


@app.command("list")
def list_cmd(ctx: typer.Context, environment: Optional[Environment] = typer.Argument(None)) -> None:
    """List managed workflows present on the service."""
    config = ctx.obj
    workflows = _run(config, lambda c: _promotion(config, c).list_managed(environment))
    if not workflows:
        typer.echo("No managed workflows found")
        return
    for workflow in workflows:
        state = "active" if workflow.get("active") else "inactive"
        typer.echo(f"{workflow.get('id')}\t{workflow.get('name')}\t{state}")


@app.command("status")
def status_cmd(ctx: typer.Context) -> None:
    """Show every managed workflow per environment."""
    config = ctx.obj
    rows = _run(config, lambda c: _promotion(config, c).status())
    if not rows:
        typer.echo("No managed workflows configured")
        return
    for row in rows:
        if not row.found:
            typer.secho(f"{row.display_name}\tmissing", fg=typer.colors.YELLOW)
            continue
        state = "active" if row.active else "inactive"
        typer.echo(f"{row.display_name}\t{state}\t{row.node_count} nodes")


@app.command("verify-deployment")
def verify_deployment_cmd(ctx: typer.Context, base_names: List[str]) -> None:
    """Check that the production copies of BASE_NAMES exist."""
    config = ctx.obj
    checks = _run(config, lambda c: _promotion(config, c).verify_deployment(base_names))
    for check in checks:
        state = "active" if check.active else "inactive"
        typer.secho(f"{check.prod_name}: {state}, {check.node_count} nodes", fg=typer.colors.GREEN)


@app.command("backup")
def backup_cmd(
    ctx: typer.Context,
    environment: Environment = typer.Argument(Environment.PROD),
    name: Optional[str] = typer.Argument(None, help="Custom backup name"),
) -> None:
    """Back up the managed workflows of ENVIRONMENT."""
    config = ctx.obj
    result = _run(config, lambda c: BackupEngine(config, c).create_backup(environment, name))
    manifest = result.manifest
    typer.echo(f"Backup {result.backup_name}: {manifest.workflow_count} workflows saved")
    if manifest.failed_count:
        _fail(f"{manifest.failed_count} workflows could not be backed up")


@app.command("list-backups")
def list_backups_cmd(ctx: typer.Context) -> None:
    """List backups, newest first."""
    backups = BackupEngine(ctx.obj).list_backups()
    if not backups:
        typer.echo("No backups found")
        return
    for info in backups:
        typer.echo(f"{info.name}\t{info.created.isoformat()}\t{info.workflow_count} workflows")


@app.command("restore")
def restore_cmd(
    ctx: typer.Context,
    backup_name: str,
    base_names: Optional[List[str]] = typer.Argument(None),
) -> None:
    """Restore workflows from BACKUP_NAME."""
    config = ctx.obj
    results = _run(
        config, lambda c: BackupEngine(config, c).restore_from_backup(backup_name, base_names)
    )
    for result in results:
        if result.status == "success":
            was = "active" if result.previously_active else "inactive"
            typer.echo(f"{result.workflow_name}: {result.action} (was {was})")
    _report_batch(results, "Restore")


@app.command("cleanup-backups")
def cleanup_backups_cmd(
    ctx: typer.Context, keep: Optional[int] = typer.Argument(None, min=0)
) -> None:
    """Delete all but the KEEP newest backups."""
    config: FlowPromoteConfig = ctx.obj
    keep_count = config.settings.max_backups_to_keep if keep is None else keep
    engine = BackupEngine(config)
    removed = engine.cleanup_old_backups(keep_count)
    typer.echo(f"Deleted {len(removed)} old backups, kept {keep_count}")


def _print_verification(report: VerificationReport) -> None:
    for error in report.errors:
        typer.secho(f"  error: {error}", fg=typer.colors.RED)
    for warning in report.warnings:
        typer.secho(f"  warning: {warning}", fg=typer.colors.YELLOW)
    if report.valid:
        typer.secho(f"{report.backup_name}: PASSED", fg=typer.colors.GREEN)
    else:
        typer.secho(f"{report.backup_name}: FAILED", fg=typer.colors.RED)


@app.command("verify")
def verify_cmd(
    ctx: typer.Context,
    backup_name: Optional[str] = typer.Argument(None),
    all_backups: bool = typer.Option(False, "--all", help="Verify every backup"),
    report: bool = typer.Option(False, "--report", help="Save JSON verification reports"),
) -> None:
    """Verify the integrity of one backup or of all backups."""
    auditor = BackupAuditor(ctx.obj)
    if all_backups:
        summary = auditor.verify_all()
        reports = summary.reports
    elif backup_name:
        reports = [auditor.verify(backup_name)]
    else:
        _fail("Please specify a backup name or --all")

    for item in reports:
        _print_verification(item)
        if report:
            typer.echo(f"Report saved: {auditor.save_verification_report(item)}")
    failed = [r for r in reports if not r.valid]
    if all_backups:
        typer.echo(f"Verified {len(reports)} backups: {len(reports) - len(failed)} passed, {len(failed)} failed")
    if failed:
        raise typer.Exit(code=1)


@app.command("compare")
def compare_cmd(
    ctx: typer.Context,
    backup1: str,
    backup2: str,
    report: Optional[Path] = typer.Option(None, "--report", help="Write a JSON report to PATH"),
) -> None:
    """Compare two backups structurally."""
    auditor = BackupAuditor(ctx.obj)
    with _errors():
        comparison = auditor.compare(backup1, backup2)
    if report is not None:
        typer.echo(f"Report saved: {auditor.save_comparison_report(comparison, report)}")
    if comparison.identical:
        typer.secho("Backups are identical", fg=typer.colors.GREEN)
        return
    for file, diffs in comparison.by_file().items():
        typer.echo(f"{file}:")
        for diff in diffs:
            typer.echo(f"  [{diff.type}] {diff.description}")
    typer.secho(f"{len(comparison.differences)} differences found", fg=typer.colors.YELLOW)
    raise typer.Exit(code=1)


@app.command("validate")
def validate_cmd(ctx: typer.Context, directory: Optional[Path] = typer.Argument(None)) -> None:
    """Validate exported workflow files."""
    config: FlowPromoteConfig = ctx.obj
    with _errors():
        result = WorkflowValidator(config).validate_directory(directory or config.paths.workflows_dir)
    typer.echo(f"Validated {result.files_checked} workflow files")
    for issue in result.errors:
        typer.secho(f"  {issue.file}: {issue.message}", fg=typer.colors.RED)
    for issue in result.warnings:
        typer.secho(f"  {issue.file}: {issue.message}", fg=typer.colors.YELLOW)
    if not result.valid:
        raise typer.Exit(code=1)
    typer.secho("All workflows are valid", fg=typer.colors.GREEN)


@release_app.command("versions")
def release_versions(ctx: typer.Context) -> None:
    """Show current and suggested versions of every managed workflow."""
    with _errors():
        rows = ReleaseCoordinator(ctx.obj).versions_summary()
    for row in rows:
        typer.echo(f"{row.base_name}\t{row.current_version or 'No releases'}\t{row.suggested_version}")


@release_app.command("next")
def release_next(ctx: typer.Context, base_name: str) -> None:
    """Print the suggested next version of BASE_NAME."""
    with _errors():
        typer.echo(ReleaseCoordinator(ctx.obj).suggest_next_version(base_name))


@release_app.command("changes")
def release_changes(
    ctx: typer.Context,
    base_name: str,
    version: str,
    output: Path = typer.Option(Path("workflow_changes.md"), help="Changelog file"),
) -> None:
    """Write a changelog between the production branch and the working tree."""
    coordinator = ReleaseCoordinator(ctx.obj)
    with _errors():
        analysis = coordinator.analyze_changes(base_name, version)
    typer.echo(coordinator.render_changelog(analysis))
    typer.echo(f"Saved changelog to: {coordinator.save_changelog(analysis, output)}")


@release_app.command("tag")
def release_tag(ctx: typer.Context, base_name: str, version: str) -> None:
    """Create and push the release tag of BASE_NAME."""
    with _errors():
        typer.echo(ReleaseCoordinator(ctx.obj).create_release_tag(base_name, version))


@release_app.command("branch")
def release_branch(ctx: typer.Context, base_name: str, version: str) -> None:
    """Create and push a release candidate branch."""
    with _errors():
        typer.echo(ReleaseCoordinator(ctx.obj).create_release_branch(base_name, version))


@release_app.command("detect")
def release_detect(
    ctx: typer.Context,
    before: str = typer.Option("HEAD~1", help="Older git ref"),
    after: str = typer.Option("HEAD", help="Newer git ref"),
) -> None:
    """Print the base names of workflows changed between two refs."""
    with _errors():
        names = ReleaseCoordinator(ctx.obj).detect_changed_workflows(before, after)
    for name in names:
        typer.echo(name)


if __name__ == "__main__":
    app()
