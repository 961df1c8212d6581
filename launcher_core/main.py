"""Command-line entry point for the launcher core.

This module provides:
- Command-line argument parsing
- Service wiring through a lazily initialized application context
- Graceful shutdown: SIGINT/SIGTERM cancel installs and stop running games
"""

import argparse
import asyncio
import signal
import sys
import uuid
from pathlib import Path

import structlog

from launcher_core import __version__
from launcher_core.models import (
    AppConfig,
    DownloadProgress,
    ExitClassification,
    ExitOutcome,
    GameInstance,
    LoaderKind,
)
from launcher_core.services.cancellation import CancellationToken
from launcher_core.services.config import ConfigurationService
from launcher_core.services.content_cache import ContentCache, InstalledHashIndex
from launcher_core.services.dependency_resolver import DependencyResolver
from launcher_core.services.download_manager import DownloadManagerService
from launcher_core.services.errors import AppError, ErrorCategory, ErrorHandlingService
from launcher_core.services.filesystem import FileSystemService
from launcher_core.services.http_client import HttpClientService
from launcher_core.services.installer import ResourceInstallService
from launcher_core.services.instances import InstanceService
from launcher_core.services.launch_command import LaunchCommandBuilder
from launcher_core.services.launcher import CrashReporter, GameLauncherService, PlayerSession
from launcher_core.services.library_filter import PlatformInfo
from launcher_core.services.limiter import ConcurrencyLimiter
from launcher_core.services.logging import setup_logging
from launcher_core.services.process_supervisor import ProcessSupervisor
from launcher_core.services.registry import ModrinthRegistryClient
from launcher_core.services.storage import JsonFileStore

log = structlog.stdlib.get_logger()

EXIT_CODES = {
    ExitClassification.NORMAL: 0,
    ExitClassification.STOPPED_BY_USER: 0,
    ExitClassification.CRASHED: 3,
}


class ApplicationContext:
    """Container for services and shutdown state.

    Services are created on first use so that commands only pay for what
    they touch (e.g. ``list`` never opens an HTTP client).
    """

    def __init__(self, config_path: Path | None = None) -> None:
        self._config_path = config_path
        self._config: AppConfig | None = None
        self._config_service: ConfigurationService | None = None
        self._errors: ErrorHandlingService | None = None
        self._filesystem: FileSystemService | None = None
        self._store: JsonFileStore | None = None
        self._http_client: HttpClientService | None = None
        self._limiter: ConcurrencyLimiter | None = None
        self._supervisor: ProcessSupervisor | None = None
        self._instances: InstanceService | None = None
        self._installer: ResourceInstallService | None = None
        self._launcher: GameLauncherService | None = None
        self._resolver: DependencyResolver | None = None
        self.cancel_token = CancellationToken("cli")
        self.exit_outcomes: list[ExitOutcome] = []

    @property
    def config_service(self) -> ConfigurationService:
        if self._config_service is None:
            self._config_service = ConfigurationService(config_path=self._config_path)
        return self._config_service

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = self.config_service.load_config()
        return self._config

    @property
    def errors(self) -> ErrorHandlingService:
        if self._errors is None:
            self._errors = ErrorHandlingService()
        return self._errors

    @property
    def filesystem(self) -> FileSystemService:
        if self._filesystem is None:
            self._filesystem = FileSystemService(self.config.working_directory)
        return self._filesystem

    @property
    def store(self) -> JsonFileStore:
        if self._store is None:
            self._store = JsonFileStore(self.config.working_directory / "data")
        return self._store

    @property
    def installed_hashes(self) -> InstalledHashIndex:
        return InstalledHashIndex(self.store)

    @property
    def http_client(self) -> HttpClientService:
        if self._http_client is None:
            self._http_client = HttpClientService(
                timeout=self.config.request_timeout,
                user_agent=f"{self.config.launcher_name}/{self.config.launcher_version}",
            )
        return self._http_client

    @property
    def limiter(self) -> ConcurrencyLimiter:
        if self._limiter is None:
            self._limiter = ConcurrencyLimiter(self.config.concurrent_downloads)
        return self._limiter

    @property
    def supervisor(self) -> ProcessSupervisor:
        if self._supervisor is None:
            self._supervisor = ProcessSupervisor(
                crash_hook=self._report_crash,
                on_exit=self.exit_outcomes.append,
                enable_crash_analysis=self.config.enable_crash_analysis,
            )
        return self._supervisor

    def _report_crash(self, instance_id: str, exit_code: int, crash_reports_dir: Path | None) -> None:
        # Resolved per call: the instance service itself depends on the supervisor
        CrashReporter(self.instances)(instance_id, exit_code, crash_reports_dir)

    @property
    def instances(self) -> InstanceService:
        if self._instances is None:
            self._instances = InstanceService(
                working_directory=self.config.working_directory,
                store=self.store,
                filesystem=self.filesystem,
                installed_hashes=self.installed_hashes,
                supervisor=self.supervisor,
            )
        return self._instances

    @property
    def registry(self) -> ModrinthRegistryClient:
        return ModrinthRegistryClient(self.http_client, self.config.registry_base_url, self.errors)

    @property
    def resolver(self) -> DependencyResolver:
        if self._resolver is None:
            self._resolver = DependencyResolver(self.registry, self.limiter, self.errors)
        return self._resolver

    @property
    def installer(self) -> ResourceInstallService:
        if self._installer is None:
            self._installer = ResourceInstallService(
                registry=self.registry,
                resolver=self.resolver,
                downloads=DownloadManagerService(self.http_client, self.limiter, self.errors),
                cache=ContentCache(self.store),
                installed_hashes=self.installed_hashes,
                filesystem=self.filesystem,
                limiter=self.limiter,
                instances=self.instances,
            )
        return self._installer

    @property
    def launcher(self) -> GameLauncherService:
        if self._launcher is None:
            config = self.config
            platform = PlatformInfo.current(features={
                "is_demo_user": config.demo_user,
                "has_custom_resolution": config.custom_resolution,
            })
            builder = LaunchCommandBuilder(
                working_directory=config.working_directory,
                platform=platform,
                launcher_name=config.launcher_name,
                launcher_version=config.launcher_version,
                default_xms=config.default_xms,
                default_xmx=config.default_xmx,
                default_java_path=config.java_path,
            )
            self._launcher = GameLauncherService(builder, self.supervisor, self.instances, self.filesystem)
        return self._launcher

    def request_shutdown(self) -> None:
        """Cancel in-flight batches and stop every running game."""
        log.info("Shutdown requested")
        self.cancel_token.cancel()
        if self._supervisor is not None:
            for instance_id in self._supervisor.running_instances():
                self._supervisor.stop(instance_id)

    async def cleanup(self) -> None:
        if self._http_client is not None:
            await self._http_client.close()
        log.info("Application cleanup complete")


class ParsedArgs:
    """Type-safe container for parsed command-line arguments."""

    def __init__(
        self,
        command: str,
        config: Path | None,
        log_level: str,
        log_dir: Path | None,
        options: argparse.Namespace,
    ) -> None:
        self.command: str = command
        self.config: Path | None = config
        self.log_level: str = log_level
        self.log_dir: Path | None = log_dir
        self.options: argparse.Namespace = options


def parse_arguments(argv: list[str] | None = None) -> ParsedArgs:
    """Parse command-line arguments.

    Returns:
        Parsed arguments container
    """
    parser = argparse.ArgumentParser(
        prog="launcher-core",
        description="Launch game instances, install registry resources and supervise running games",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  launcher-core list                                    List instances
  launcher-core create survival 1.20.1 --loader fabric  Create an instance
  launcher-core install <instance-id> fabric-api        Install a project with its dependencies
  launcher-core launch <instance-id> --player Steve     Launch and wait for the game to exit
        """
    )

    _ = parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    _ = parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: ~/.config/launcher-core/config.json)"
    )

    _ = parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Set the logging level (default: INFO)"
    )

    _ = parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for log files (default: console only)"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    _ = commands.add_parser("list", help="List instances")

    create = commands.add_parser("create", help="Create an instance")
    _ = create.add_argument("name", help="Instance name (also its directory name)")
    _ = create.add_argument("game_version", help="Game version id, e.g. 1.20.1")
    _ = create.add_argument(
        "--loader",
        choices=[kind.value for kind in LoaderKind],
        default=LoaderKind.VANILLA.value,
    )
    _ = create.add_argument("--loader-version", default="")
    _ = create.add_argument("--main-class", default="net.minecraft.client.main.Main")
    _ = create.add_argument("--xms", type=int, default=0, help="Minimum heap in MB (0 uses the configured default)")
    _ = create.add_argument("--xmx", type=int, default=0, help="Maximum heap in MB (0 uses the configured default)")
    _ = create.add_argument("--jvm-args", default="", help="Extra JVM arguments, space separated")
    _ = create.add_argument("--java", default="", help="Java executable for this instance")
    _ = create.add_argument("--project", action="append", default=[], help="Project to install after creation")

    launch = commands.add_parser("launch", help="Launch an instance and wait for it to exit")
    _ = launch.add_argument("instance_id")
    _ = launch.add_argument("--player", default="Player", help="Offline player name")

    resolve = commands.add_parser("resolve", help="List missing dependencies of a project for an instance")
    _ = resolve.add_argument("instance_id")
    _ = resolve.add_argument("project_id")

    install = commands.add_parser("install", help="Install a project and its missing dependencies")
    _ = install.add_argument("instance_id")
    _ = install.add_argument("project_id")
    _ = install.add_argument("--version-id", default=None)
    _ = install.add_argument("--target", default="mods", help="Directory inside the instance (default: mods)")
    _ = install.add_argument("--include-optional", action="store_true")

    delete = commands.add_parser("delete", help="Delete an instance")
    _ = delete.add_argument("instance_id")
    _ = delete.add_argument("--keep-files", action="store_true", help="Remove the record but keep the directory")

    ns = parser.parse_args(argv)

    command_val: str = ns.command
    config_val: Path | None = ns.config
    log_level_val: str = ns.log_level if ns.log_level else "INFO"
    log_dir_val: Path | None = ns.log_dir

    return ParsedArgs(
        command=command_val,
        config=config_val,
        log_level=log_level_val,
        log_dir=log_dir_val,
        options=ns,
    )


def setup_signal_handlers(context: ApplicationContext) -> None:
    """Set up signal handlers for graceful shutdown.

    Args:
        context: Application context for shutdown coordination
    """
    def signal_handler(signum: int, frame: object) -> None:
        _ = frame
        signal_name = signal.Signals(signum).name
        log.info("Received signal", signal=signal_name)
        context.request_shutdown()

    _ = signal.signal(signal.SIGINT, signal_handler)
    _ = signal.signal(signal.SIGTERM, signal_handler)

    log.debug("Signal handlers registered")


def print_progress(progress: DownloadProgress) -> None:
    print(f"\r{progress.completed + progress.failed}/{progress.total} {progress.current_file}", end="", flush=True)
    if progress.finished:
        print()


async def cmd_list(context: ApplicationContext, options: argparse.Namespace) -> int:
    instances = context.instances.list()
    if not instances:
        print("No instances")
        return 0
    for instance in instances:
        last_played = instance.last_played.strftime("%Y-%m-%d %H:%M") if instance.last_played else "never"
        print(f"{instance.id}  {instance.name}  {instance.game_version} ({instance.loader.value})  last played: {last_played}")
    return 0


async def cmd_create(context: ApplicationContext, options: argparse.Namespace) -> int:
    instance = GameInstance(
        id=uuid.uuid4().hex,
        name=options.name,
        game_version=options.game_version,
        loader=LoaderKind(options.loader),
        loader_version=options.loader_version,
        main_class=options.main_class,
        working_directory=context.config.working_directory,
        jvm_arguments=options.jvm_args,
        xms=options.xms,
        xmx=options.xmx,
        java_path=options.java,
    )
    if options.project:
        results = await context.installer.create_with_resources(instance, options.project, context.cancel_token)
        failed = [r.project_id for r in results if not r.success]
        if failed:
            print(f"Created {instance.id}, but these installs failed: {', '.join(failed)}")
            return 1
    else:
        context.instances.create(instance, context.cancel_token)
    print(instance.id)
    return 0


async def cmd_launch(context: ApplicationContext, options: argparse.Namespace) -> int:
    session = PlayerSession.offline(options.player)
    process = await context.launcher.launch(options.instance_id, session)
    print(f"Started {options.instance_id} (pid {process.pid})")
    outcome = await context.supervisor.wait(options.instance_id)
    if outcome is None:
        return 1
    print(f"Exited with code {outcome.exit_code}: {outcome.classification.value}")
    return EXIT_CODES[outcome.classification]


async def cmd_resolve(context: ApplicationContext, options: argparse.Namespace) -> int:
    instance = context.instances.require(options.instance_id)
    missing = await context.resolver.resolve_missing(
        options.project_id,
        instance.game_version,
        instance.loader.value,
        context.installed_hashes.hashes(instance.id),
        context.cancel_token,
    )
    if not missing:
        print("All dependencies satisfied")
    for item in missing:
        best = item.candidates[0].version_number if item.candidates else "no compatible version"
        print(f"{item.dependency.project_id}  {item.dependency.relation.value}  {best}")
    return 0


async def cmd_install(context: ApplicationContext, options: argparse.Namespace) -> int:
    instance = context.instances.require(options.instance_id)
    result = await context.installer.install(
        instance,
        options.project_id,
        version_id=options.version_id,
        target_directory=options.target,
        include_optional=options.include_optional,
        cancel_token=context.cancel_token,
        on_progress=print_progress,
    )
    for task in result.report.failed_required:
        print(f"Failed: {task.request.label}: {task.error}", file=sys.stderr)
    result.raise_for_failure()
    for path in result.installed_files:
        print(f"Installed {path.name}")
    return 0


async def cmd_delete(context: ApplicationContext, options: argparse.Namespace) -> int:
    if not context.instances.delete(options.instance_id, remove_files=not options.keep_files):
        print(f"No such instance: {options.instance_id}", file=sys.stderr)
        return 1
    print(f"Deleted {options.instance_id}")
    return 0


COMMANDS = {
    "list": cmd_list,
    "create": cmd_create,
    "launch": cmd_launch,
    "resolve": cmd_resolve,
    "install": cmd_install,
    "delete": cmd_delete,
}


async def run_command(context: ApplicationContext, args: ParsedArgs) -> int:
    """Run one subcommand, converting launcher errors into a message and exit code."""
    try:
        return await COMMANDS[args.command](context, args.options)
    except AppError as e:
        friendly = context.errors.handle_error(e, operation=args.command, component="cli")
        print(context.errors.create_user_message(friendly), file=sys.stderr)
        return 130 if e.category is ErrorCategory.CANCELLED else 2
    finally:
        await context.cleanup()


def main() -> None:
    """Main entry point for the launcher CLI."""
    args = parse_arguments()

    _ = setup_logging(
        log_level=args.log_level,
        log_dir=args.log_dir,
    )

    log.info(
        "Starting launcher core",
        version=__version__,
        command=args.command,
        config_path=str(args.config) if args.config else "default",
    )

    context = ApplicationContext(config_path=args.config)
    setup_signal_handlers(context)

    try:
        exit_code = asyncio.run(run_command(context, args))

    except KeyboardInterrupt:
        log.info("Interrupted by user")
        exit_code = 130

    except Exception as e:
        log.error("Unhandled exception", error=str(e), exc_info=True)
        print(f"Fatal error: {e}", file=sys.stderr)
        exit_code = 1

    log.info("Launcher exiting", exit_code=exit_code)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
