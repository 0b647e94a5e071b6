"""
Backup, restore and migration orchestrator.

This module drives the pipeline state machine. Each pipeline creates a
PipelineContext, runs its steps through ``_run_step`` (which records the
step, logs it and performs the state transition) and converts any
unexpected OS failure into a typed error. Fatal errors move the context to
Failed and propagate with the context attached.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Optional, Union

from explorerllm_ops.backup.manifest import MANIFEST_FILENAME, BackupManifest
from explorerllm_ops.backup.retention import RetentionManager, RetentionPolicy
from explorerllm_ops.core.exceptions import (
    ConfigurationError,
    ExplorerLLMOpsError,
    HealthCheckWarning,
    InvalidBackupSetError,
    ServicesRunningError,
    TransferError,
)
from explorerllm_ops.models.config import OpsSettings, PipelineOptions, RemoteTarget
from explorerllm_ops.models.session import (
    BackupSet,
    PipelineContext,
    PipelineState,
    ServiceState,
    StepRecord,
    StepStatus,
)
from explorerllm_ops.runner.process import DryRunGuard, ProcessRunner
from explorerllm_ops.services.controller import ServiceController
from explorerllm_ops.services.provision import DockerProvisioner
from explorerllm_ops.transfer.archive import ArchiveTransport
from explorerllm_ops.transfer.filesystem import HostFilesystem, filesystem_for
from explorerllm_ops.utils.helpers import format_bytes, generate_timestamp
from explorerllm_ops.utils.logging import LogCategory, PipelineLogger
from explorerllm_ops.validation.backup_set import BackupSetValidator
from explorerllm_ops.validation.connectivity import ConnectivityValidator
from explorerllm_ops.validation.dependency import DependencyValidator, local_tools

PathLike = Union[str, Path, PurePosixPath]


@dataclass
class _Toolkit:
    """Components bound to one host and one pipeline run."""
    settings: OpsSettings
    target: Optional[RemoteTarget]
    fs: HostFilesystem
    controller: ServiceController
    transport: ArchiveTransport


class BackupRestoreOrchestrator:
    """
    Runs the backup, restore, migrate and verify pipelines.

    All external effects go through the injected ProcessRunner, so a
    recording runner can stand in for docker, ssh and rsync.
    """

    def __init__(
        self,
        settings: Optional[OpsSettings] = None,
        runner: Optional[ProcessRunner] = None,
        connectivity: Optional[ConnectivityValidator] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now
    ):
        self.settings = settings or OpsSettings()
        self.runner = runner or ProcessRunner()
        self.connectivity = connectivity or ConnectivityValidator()
        self.dependencies = DependencyValidator(self.runner)
        self._sleep = sleep
        self._clock = clock
        self._now = now

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _start(self, pipeline: str, options: Optional[PipelineOptions]):
        ctx = PipelineContext(
            pipeline=pipeline,
            options=options or PipelineOptions(),
            settings=self.settings,
        )
        log = PipelineLogger(pipeline)
        guard = DryRunGuard(dry_run=ctx.dry_run, log=log, on_skip=ctx.plan)
        if ctx.dry_run:
            log.info("Dry run: no changes will be made")
        return ctx, log, guard

    def _toolkit(self, settings: OpsSettings, guard: DryRunGuard, log: PipelineLogger,
                 target: Optional[RemoteTarget] = None) -> _Toolkit:
        fs = filesystem_for(self.runner, target)
        return _Toolkit(
            settings=settings,
            target=target,
            fs=fs,
            controller=ServiceController(
                self.runner, settings, guard=guard, target=target, log=log,
                sleep=self._sleep, clock=self._clock
            ),
            transport=ArchiveTransport(
                self.runner, settings, guard=guard, target=target, filesystem=fs, log=log
            ),
        )

    def _run_step(
        self,
        ctx: PipelineContext,
        log: PipelineLogger,
        name: str,
        func: Callable[..., Any],
        *args: Any,
        to_state: Optional[PipelineState] = None,
        **kwargs: Any
    ) -> Any:
        """Execute a single pipeline step and perform its transition."""
        record = StepRecord(name=name)
        ctx.steps.append(record)
        log.step_start(name)

        try:
            result = func(*args, **kwargs)
        except HealthCheckWarning as warning:
            self._warn(ctx, log, warning.message)
            result = None
        except ExplorerLLMOpsError as e:
            record.finish(StepStatus.FAILED, e.message)
            log.step_failed(name, e.message, e.code)
            raise
        except OSError as e:
            error = TransferError(f"{name} failed: {e}", details={"step": name})
            record.finish(StepStatus.FAILED, error.message)
            log.step_failed(name, error.message, error.code)
            raise error from e

        record.finish(StepStatus.COMPLETED)
        log.step_complete(name, record.duration or 0.0)
        if to_state is not None:
            ctx.transition(to_state)
        return result

    def _skip_step(self, ctx: PipelineContext, log: PipelineLogger, name: str, reason: str):
        record = StepRecord(name=name)
        record.finish(StepStatus.SKIPPED)
        ctx.steps.append(record)
        log.info(f"Skipping step: {name} ({reason})", step=name)

    @staticmethod
    def _warn(ctx: PipelineContext, log: PipelineLogger, message: str):
        ctx.add_warning(message)
        log.warning(message)

    @staticmethod
    def _abort(ctx: PipelineContext, error: ExplorerLLMOpsError):
        ctx.fail(error)
        error.context = ctx

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _require_tools(self, tools, target: Optional[RemoteTarget] = None):
        self.dependencies.require(tools, target)

    def _require_compose_file(self, kit: _Toolkit):
        if not kit.fs.exists(kit.settings.compose_path):
            where = f" on {kit.target.host}" if kit.target else ""
            raise ConfigurationError(
                f"No {kit.settings.compose_file} found in {kit.settings.project_dir}{where}",
                remediation=["Run from the project directory or pass --project-dir"]
            )

    def _quiesce(self, ctx: PipelineContext, log: PipelineLogger, kit: _Toolkit) -> bool:
        """Record the prior service state and stop the services if Running."""
        state = kit.controller.status()
        ctx.services_were_running = state == ServiceState.RUNNING
        if state == ServiceState.UNKNOWN:
            self._warn(ctx, log, "Could not determine service state; continuing without stopping")
            return False
        if state == ServiceState.STOPPED:
            log.info("Services are not running", LogCategory.SERVICE)
            return False
        return kit.controller.stop()

    def _snapshot_volumes(self, ctx: PipelineContext, kit: _Toolkit, set_dir: PathLike, timestamp: str):
        if not kit.fs.is_dir(set_dir) and kit.controller.guard.permits(f"create backup directory {set_dir}"):
            kit.fs.make_dirs(set_dir)

        webui_archive = f"webui-data_{timestamp}.tar.gz"
        models_archive = f"models_{timestamp}.tar.gz"
        kit.transport.snapshot(kit.settings.webui_volume, set_dir, webui_archive)
        kit.transport.snapshot(kit.settings.models_volume, set_dir, models_archive)
        ctx.backup_set = BackupSet(
            id=timestamp,
            directory=Path(str(set_dir)),
            webui_archive=webui_archive,
            models_archive=models_archive,
        )

    def _capture_configuration(self, ctx: PipelineContext, log: PipelineLogger, kit: _Toolkit,
                               timestamp: str):
        backup_set = ctx.backup_set
        config_name = kit.settings.compose_file
        kit.transport.copy_config(
            kit.settings.compose_path,
            backup_set.directory / config_name,
            preserve_suffix=timestamp
        )

        manifest = BackupManifest(
            backup_id=timestamp,
            created=self._now(),
            project_dir=str(kit.settings.project_dir),
            compose_project=kit.settings.compose_project_name,
            artifacts={
                "webui": backup_set.webui_archive,
                "models": backup_set.models_archive,
                "config": config_name,
            },
            volumes=[kit.settings.webui_volume, kit.settings.models_volume],
            restore_command=f'explorerllm-ops restore "{backup_set.directory}"',
        )
        text = manifest.render()
        manifest_path = backup_set.directory / MANIFEST_FILENAME
        if kit.controller.guard.permits(f"write {manifest_path}"):
            kit.fs.write_text(manifest_path, text)
            log.info(f"Manifest written to {manifest_path}")
        ctx.backup_set = backup_set.model_copy(update={"config_file": config_name, "manifest_text": text})

    def _resume_after_failure(self, ctx: PipelineContext, log: PipelineLogger, kit: _Toolkit):
        """Restart services after a fatal error; never masks the original error."""
        log.warning("Restarting services after failure", LogCategory.SERVICE)
        try:
            kit.controller.up()
        except ExplorerLLMOpsError as e:
            self._warn(ctx, log, f"Could not restart services after failure: {e.message}")

    def _discover_set(self, ctx: PipelineContext, log: PipelineLogger, fs: HostFilesystem,
                      directory: PathLike) -> BackupSet:
        validator = BackupSetValidator(fs, self.settings.compose_file, log)
        backup_set, warnings = validator.discover(Path(str(directory)))
        for warning in warnings:
            self._warn(ctx, log, warning)
        ctx.backup_set = backup_set
        return backup_set

    def _guard_running(self, ctx: PipelineContext, log: PipelineLogger, kit: _Toolkit):
        """Refuse to overwrite volumes of running services unless forced."""
        state = kit.controller.status()
        ctx.services_were_running = state == ServiceState.RUNNING
        if state != ServiceState.RUNNING:
            return
        where = f" on {kit.target.host}" if kit.target else ""
        if not ctx.options.force_restore:
            raise ServicesRunningError(
                f"Services are running{where}; restoring would overwrite volumes in use",
                failed_checks=["services_stopped"],
                remediation=[
                    f"Stop services first ('{kit.settings.compose_executable} stop') or use --force"
                ]
            )
        log.warning(f"Services are running{where}; --force given, they will be stopped", LogCategory.SERVICE)

    def _check_restore_target(self, ctx: PipelineContext, log: PipelineLogger, kit: _Toolkit,
                              backup_set: BackupSet):
        brings_config = backup_set.config_file is not None and not ctx.options.skip_config
        if not brings_config:
            self._require_compose_file(kit)
        self._guard_running(ctx, log, kit)

    def _stop_for_restore(self, ctx: PipelineContext, kit: _Toolkit):
        if ctx.services_were_running:
            kit.controller.stop()

    def _apply_configuration(self, ctx: PipelineContext, log: PipelineLogger, kit: _Toolkit,
                             backup_set: BackupSet, timestamp: str):
        if ctx.options.skip_config:
            log.info("Keeping current configuration (--skip-config)")
            return
        if backup_set.config_path is None:
            log.info("Backup carries no configuration; keeping current one")
            return
        if str(backup_set.config_path) == str(kit.settings.compose_path):
            log.info("Configuration already in place")
            return
        project_dir = kit.settings.project_dir
        if not kit.fs.is_dir(project_dir) and kit.controller.guard.permits(f"create {project_dir}"):
            kit.fs.make_dirs(project_dir)
        kit.transport.copy_config(backup_set.config_path, kit.settings.compose_path, preserve_suffix=timestamp)

    def _restore_volumes(self, kit: _Toolkit, backup_set: BackupSet):
        kit.controller.create_volumes()
        kit.transport.apply(backup_set.webui_path, kit.settings.webui_volume)
        kit.transport.apply(backup_set.models_path, kit.settings.models_volume)

    def _bring_up(self, ctx: PipelineContext, kit: _Toolkit, use_start: bool = False):
        started = kit.controller.start() if use_start else kit.controller.up()
        if started:
            kit.controller.wait_until_running()

    def _verify_services(self, ctx: PipelineContext, log: PipelineLogger, kit: _Toolkit):
        if not kit.controller.guard.permits("verify services are running and list models"):
            return
        state = kit.controller.status()
        ctx.summary["services"] = state.value
        if state != ServiceState.RUNNING:
            self._warn(ctx, log, f"Services are not running (state: {state.value})")

        count = kit.controller.model_count()
        ctx.summary["models"] = count
        if count is None:
            self._warn(ctx, log, "Could not query Ollama models")
        else:
            log.info(f"Ollama reports {count} model(s)", LogCategory.SERVICE)

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def backup(self, backup_root: Optional[PathLike] = None,
               options: Optional[PipelineOptions] = None) -> PipelineContext:
        """
        Back up both volumes and the compose file into a new backup set.

        Services are stopped for the duration of the snapshot and always
        started again, including after a fatal error.
        """
        ctx, log, guard = self._start("backup", options)
        kit = self._toolkit(self.settings, guard, log)
        root = Path(backup_root or self.settings.backup_dir).absolute()
        timestamp = generate_timestamp(self._now())
        set_dir = root / f"{self.settings.project_name}_{timestamp}"
        quiesced = False

        try:
            self._run_step(ctx, log, "Validate environment", self._validate_local, kit,
                           to_state=PipelineState.VALIDATED)
            self._run_step(ctx, log, "Stop services", self._quiesce, ctx, log, kit,
                           to_state=PipelineState.SERVICES_QUIESCED)
            quiesced = True
            self._run_step(ctx, log, "Snapshot volumes", self._snapshot_volumes, ctx, kit, set_dir, timestamp,
                           to_state=PipelineState.DATA_TRANSFERRED)
            self._run_step(ctx, log, "Capture configuration", self._capture_configuration, ctx, log, kit, timestamp,
                           to_state=PipelineState.CONFIG_APPLIED)
            self._run_step(ctx, log, "Start services", self._bring_up, ctx, kit,
                           use_start=bool(ctx.services_were_running),
                           to_state=PipelineState.SERVICES_RESUMED)
            quiesced = False
            self._run_step(ctx, log, "Verify and prune", self._finish_backup, ctx, log, kit, root, set_dir,
                           to_state=PipelineState.VERIFIED)
            ctx.transition(PipelineState.DONE)
        except ExplorerLLMOpsError as e:
            if quiesced:
                self._resume_after_failure(ctx, log, kit)
            if kit.fs.exists(set_dir):
                log.warning(f"Partial backup left at {set_dir}")
            self._abort(ctx, e)
            raise
        except KeyboardInterrupt as e:
            log.warning("Backup interrupted")
            if quiesced:
                self._resume_after_failure(ctx, log, kit)
            if kit.fs.exists(set_dir):
                log.warning(f"Partial backup left at {set_dir}")
            ctx.fail(e)
            raise

        log.info(f"Backup completed: {set_dir}")
        return ctx

    def _validate_local(self, kit: _Toolkit):
        self._require_tools(local_tools(kit.settings))
        self._require_compose_file(kit)

    def _finish_backup(self, ctx: PipelineContext, log: PipelineLogger, kit: _Toolkit,
                       root: Path, set_dir: Path):
        if not ctx.dry_run and kit.controller.status() != ServiceState.RUNNING:
            self._warn(ctx, log, "Services are not running after backup")

        retention = RetentionManager(
            self.settings.project_name,
            RetentionPolicy(self.settings.retention_days),
            filesystem=kit.fs,
            guard=kit.controller.guard,
            log=log,
            now=self._now,
        )
        removed = retention.prune(root, keep=set_dir)

        size = kit.fs.size(set_dir)
        ctx.summary.update({
            "location": str(set_dir),
            "size": format_bytes(size) if size is not None else None,
            "files": ctx.backup_set.files + [MANIFEST_FILENAME],
            "restore_command": f'explorerllm-ops restore "{set_dir}"',
            "removed": [str(p) for p in removed],
        })

    def restore(self, backup_dir: PathLike, options: Optional[PipelineOptions] = None) -> PipelineContext:
        """
        Restore a backup set into the local project.

        The running-services guard is evaluated before anything is stopped
        or extracted.
        """
        ctx, log, guard = self._start("restore", options)
        kit = self._toolkit(self.settings, guard, log)
        backup_dir = Path(backup_dir).absolute()

        try:
            backup_set = self._run_step(ctx, log, "Validate backup set", self._discover_set,
                                        ctx, log, kit.fs, backup_dir)
            self._run_step(ctx, log, "Check dependencies", self._require_tools, local_tools(self.settings))
            self._run_step(ctx, log, "Check current installation", self._check_restore_target,
                           ctx, log, kit, backup_set, to_state=PipelineState.VALIDATED)
            self._restore_into(ctx, log, kit, backup_set)
            ctx.transition(PipelineState.DONE)
        except ExplorerLLMOpsError as e:
            self._abort(ctx, e)
            raise

        ctx.summary.update({
            "backup_id": backup_set.id,
            "webui_url": f"http://localhost:{self.settings.webui_port}",
        })
        log.info(f"Restore of backup {backup_set.id} completed")
        return ctx

    def _restore_into(self, ctx: PipelineContext, log: PipelineLogger, kit: _Toolkit, backup_set: BackupSet):
        """Steps shared by restore and the destination half of a migration."""
        timestamp = generate_timestamp(self._now())
        self._run_step(ctx, log, "Stop services", self._stop_for_restore, ctx, kit,
                       to_state=PipelineState.SERVICES_QUIESCED)
        self._run_step(ctx, log, "Restore configuration", self._apply_configuration,
                       ctx, log, kit, backup_set, timestamp, to_state=PipelineState.CONFIG_APPLIED)
        self._run_step(ctx, log, "Restore data volumes", self._restore_volumes, kit, backup_set,
                       to_state=PipelineState.DATA_TRANSFERRED)
        self._run_step(ctx, log, "Start services", self._bring_up, ctx, kit,
                       to_state=PipelineState.SERVICES_RESUMED)
        self._run_step(ctx, log, "Verify services", self._verify_services, ctx, log, kit,
                       to_state=PipelineState.VERIFIED)

    def verify(self, options: Optional[PipelineOptions] = None) -> PipelineContext:
        """Report service state and model count; health problems are warnings."""
        ctx, log, guard = self._start("verify", options)
        kit = self._toolkit(self.settings, guard, log)
        try:
            self._run_step(ctx, log, "Check dependencies", self._require_tools, local_tools(self.settings),
                           to_state=PipelineState.VALIDATED)
            self._run_step(ctx, log, "Verify services", self._verify_services, ctx, log, kit,
                           to_state=PipelineState.VERIFIED)
            ctx.transition(PipelineState.DONE)
        except ExplorerLLMOpsError as e:
            self._abort(ctx, e)
            raise
        ctx.summary["running_services"] = kit.controller.running_services()
        return ctx

    def migrate(
        self,
        source_host: str,
        destination_host: str,
        user: Optional[str] = None,
        base_path: Optional[str] = None,
        ssh_key: Optional[str] = None,
        options: Optional[PipelineOptions] = None
    ) -> PipelineContext:
        """
        Move the deployment from one remote host to another.

        The source is backed up into a staging directory, relayed to
        ``<base>/<project>`` on the destination and restored there.
        """
        ctx, log, guard = self._start("migrate", options)
        try:
            if source_host.strip().lower() == destination_host.strip().lower():
                raise ConfigurationError(
                    f"Source and destination are the same host: {source_host}",
                    remediation=["Pass two different hosts"]
                )
            target_args = {"ssh_key_path": ssh_key, "base_path": base_path}
            if user:
                target_args["user"] = user
            source = RemoteTarget(host=source_host, **target_args)
            destination = RemoteTarget(host=destination_host, **target_args)
        except ExplorerLLMOpsError as e:
            self._abort(ctx, e)
            raise
        except ValueError as e:
            error = ConfigurationError(f"Invalid migration target: {e}")
            self._abort(ctx, error)
            raise error from e

        staging = PurePosixPath(source.root) / self.settings.staging_dir_name
        dest_project = PurePosixPath(destination.root) / self.settings.project_name
        src = self._toolkit(self.settings.for_project_dir(source.root), guard, log, source)
        dst = self._toolkit(self.settings.for_project_dir(dest_project), guard, log, destination)
        timestamp = generate_timestamp(self._now())

        log.info(f"Migrating {source} -> {destination}")
        try:
            self._run_step(ctx, log, "Pre-flight checks", self._preflight_migration,
                           ctx, log, src, dst, staging, to_state=PipelineState.VALIDATED)

            if ctx.options.skip_docker:
                self._skip_step(ctx, log, "Install Docker on destination", "--skip-docker")
            else:
                self._run_step(ctx, log, "Install Docker on destination",
                               DockerProvisioner(self.runner, guard, log).ensure_docker, destination)

            if ctx.options.skip_backup:
                self._skip_step(ctx, log, "Back up source", "--skip-backup")
                ctx.transition(PipelineState.SERVICES_QUIESCED)
            else:
                self._run_step(ctx, log, "Back up source", self._backup_source, ctx, log, src, staging, timestamp,
                               to_state=PipelineState.SERVICES_QUIESCED)

            self._run_step(ctx, log, "Transfer backup", self._transfer, ctx, log, src, dst, staging, dest_project,
                           timestamp)
            backup_set = self._run_step(ctx, log, "Validate transferred backup", self._validate_transferred,
                                        ctx, log, dst, dest_project)
            # The compose file arrives with the transfer into the project directory.
            self._run_step(ctx, log, "Check destination configuration", self._check_destination_config,
                           dst, backup_set, to_state=PipelineState.CONFIG_APPLIED)
            self._run_step(ctx, log, "Restore data volumes on destination", self._restore_volumes, dst, backup_set,
                           to_state=PipelineState.DATA_TRANSFERRED)
            self._run_step(ctx, log, "Start services on destination", self._bring_up, ctx, dst,
                           to_state=PipelineState.SERVICES_RESUMED)
            self._run_step(ctx, log, "Verify migration", self._verify_services, ctx, log, dst,
                           to_state=PipelineState.VERIFIED)
            self._run_step(ctx, log, "Clean up", self._cleanup_migration, ctx, log, src, dst, staging, backup_set)
            ctx.transition(PipelineState.DONE)
        except ExplorerLLMOpsError as e:
            self._abort(ctx, e)
            raise
        except KeyboardInterrupt as e:
            log.warning(
                f"Migration interrupted. You may need to manually clean up "
                f"{staging} on {source.host} and {dest_project} on {destination.host}"
            )
            ctx.fail(e)
            raise

        ctx.summary.update({
            "source": source.address,
            "destination": destination.address,
            "destination_path": str(dest_project),
            "webui_url": f"http://{destination.host}:{self.settings.webui_port}",
        })
        log.info(f"Migration to {destination.host} completed")
        return ctx

    def _preflight_migration(self, ctx: PipelineContext, log: PipelineLogger, src: _Toolkit, dst: _Toolkit,
                             staging: PurePosixPath):
        self._require_tools(["ssh", "rsync"])
        for kit in (src, dst):
            self.connectivity.require(kit.target)
            log.info(f"Connected to {kit.target.address}", LogCategory.VALIDATION)
        self._require_compose_file(src)

        state = src.controller.status()
        ctx.services_were_running = state == ServiceState.RUNNING
        log.info(f"Source services: {state.value}", LogCategory.SERVICE)
        self._guard_destination(dst)

        if ctx.options.skip_backup:
            if not src.fs.is_dir(staging):
                raise InvalidBackupSetError(
                    f"--skip-backup given but no backup found at {staging} on {src.target.host}",
                    failed_checks=["staging_directory"],
                    remediation=["Run the migration without --skip-backup"]
                )
            self._discover_set(ctx, log, src.fs, staging)

    def _guard_destination(self, dst: _Toolkit):
        """Refuse to migrate onto a deployment that is running on the destination."""
        if not dst.fs.exists(dst.settings.compose_path):
            return
        if dst.controller.status() != ServiceState.RUNNING:
            return
        raise ServicesRunningError(
            f"Services are running on {dst.target.host} in {dst.settings.project_dir}; "
            f"migrating would overwrite the deployment in use",
            failed_checks=["destination_services_stopped"],
            remediation=[
                f"Stop them first: ssh {dst.target.address} "
                f"'cd {dst.settings.project_dir} && {dst.settings.compose_executable} stop'"
            ]
        )

    def _check_destination_config(self, dst: _Toolkit, backup_set: BackupSet):
        if backup_set.config_file is None:
            self._require_compose_file(dst)

    def _backup_source(self, ctx: PipelineContext, log: PipelineLogger, src: _Toolkit,
                       staging: PurePosixPath, timestamp: str):
        """Snapshot the source into the staging directory, resuming it only if it was running."""
        if src.fs.exists(staging) and src.controller.guard.permits(f"clear {staging} on {src.target.host}"):
            src.fs.remove_tree(staging)

        stopped = False
        try:
            if ctx.services_were_running:
                stopped = src.controller.stop()
            self._snapshot_volumes(ctx, src, staging, timestamp)
            self._capture_configuration(ctx, log, src, timestamp)
        except ExplorerLLMOpsError:
            if stopped:
                self._resume_after_failure(ctx, log, src)
            raise
        if stopped:
            src.controller.start()

    def _transfer(self, ctx: PipelineContext, log: PipelineLogger, src: _Toolkit, dst: _Toolkit,
                  staging: PurePosixPath, dest_project: PurePosixPath, timestamp: str):
        if dst.controller.guard.permits(f"create {dest_project} on {dst.target.host}"):
            dst.fs.make_dirs(dest_project)
        compose = dst.settings.compose_path
        brings_config = ctx.backup_set is not None and ctx.backup_set.config_file is not None
        if brings_config and dst.fs.exists(compose):
            kept = f"{compose}.backup.{timestamp}"
            if dst.controller.guard.permits(f"keep existing {compose} as {kept} on {dst.target.host}"):
                dst.fs.move(compose, kept)
                log.info(f"Existing configuration kept as {kept}", LogCategory.TRANSFER)
        src.transport.remote_sync(src.target, staging, dst.target, dest_project)

    def _validate_transferred(self, ctx: PipelineContext, log: PipelineLogger, dst: _Toolkit,
                              dest_project: PurePosixPath) -> BackupSet:
        if ctx.dry_run:
            # Nothing was transferred; restore is planned from the source set.
            planned = ctx.backup_set.model_copy(update={"directory": Path(str(dest_project))})
            ctx.backup_set = planned
            return planned
        return self._discover_set(ctx, log, dst.fs, dest_project)

    def _cleanup_migration(self, ctx: PipelineContext, log: PipelineLogger, src: _Toolkit, dst: _Toolkit,
                           staging: PurePosixPath, backup_set: BackupSet):
        """Best-effort removal of temporary files on both hosts."""
        actions = [
            (f"remove {staging} on {src.target.host}", src.fs.remove_tree, staging),
            (f"remove {backup_set.webui_path} on {dst.target.host}", dst.fs.remove, backup_set.webui_path),
            (f"remove {backup_set.models_path} on {dst.target.host}", dst.fs.remove, backup_set.models_path),
        ]
        for description, action, path in actions:
            if not src.controller.guard.permits(description):
                continue
            try:
                action(path)
            except (ExplorerLLMOpsError, OSError) as e:
                self._warn(ctx, log, f"Cleanup failed, could not {description}: {e}")
