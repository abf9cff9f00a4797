"""migsetup CLI - one-time Google Cloud setup for a Workspace migration."""

from pathlib import Path

import fire
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from migsetup import __version__
from migsetup.artifacts import key_filename
from migsetup.config import ProvisioningRequest, get_config_path, load_config
from migsetup.gcloud import GcloudControlPlane
from migsetup.instructions import InstructionEmitter
from migsetup.logging import configure_logging, default_log_path, logger
from migsetup.orchestrator import Orchestrator
from migsetup.preflight import check_prerequisites, is_cloud_shell
from migsetup.prompts import ConsoleOperator
from migsetup.scopes import CHAT_SCOPES, STANDARD_SCOPES, all_scopes, scopes_csv

console = Console()


class MigsetupCLI:
    """Google Cloud setup for a Google Workspace migration.

    Examples:
        migsetup run --domain=example.com --admin=admin@example.com
        migsetup --yes run --domain=example.com --admin=admin@example.com --billing=01ABCD-234567-89EFGH
        migsetup scopes --csv
    """

    def __init__(self, verbose: bool = False, yes: bool = False, log_file: str | None = None) -> None:
        """Initialize CLI with options.

        Args:
            verbose: Enable debug logging
            yes: Answer yes to every confirmation
            log_file: Run log path (default: ~/migsetup-<timestamp>.log)
        """
        configure_logging(verbose)
        self._verbose = verbose
        self._yes = yes
        self._log_file = Path(log_file).expanduser() if log_file else None
        logger.debug("migsetup initialized with verbose={}, yes={}", verbose, yes)

    def version(self) -> None:
        """Show migsetup version."""
        console.print(f"migsetup {__version__}")

    def scopes(self, csv: bool = False) -> None:
        """Print the OAuth scopes to authorize for domain-wide delegation.

        Args:
            csv: Print one comma-separated line, as pasted into the Admin Console
        """
        if csv:
            print(scopes_csv())
            return
        console.print(f"[bold]Standard scopes ({len(STANDARD_SCOPES)}):[/bold]")
        for scope in STANDARD_SCOPES:
            console.print(f"  {scope}")
        console.print(f"[bold]Chat scopes ({len(CHAT_SCOPES)}):[/bold]")
        for scope in CHAT_SCOPES:
            console.print(f"  {scope}")
        console.print(f"[dim]{len(all_scopes())} total[/dim]")

    def config(self) -> None:
        """Show the config file path and the effective settings."""
        config_path = get_config_path()
        console.print(f"[bold]Config path:[/bold] {config_path}")
        if config_path.exists():
            console.print("[green]Config file exists[/green]")
        else:
            console.print("[yellow]No config file, using defaults[/yellow]")
        console.print()

        config = load_config(config_path)
        for name, value in config.model_dump(exclude={"timings", "required_apis"}).items():
            console.print(f"  {name} = {value}")
        for name, value in config.timings.model_dump().items():
            console.print(f"  timings.{name} = {value}")
        console.print(f"  required_apis ({len(config.required_apis)}):")
        for api_name in config.required_apis:
            console.print(f"    {api_name}")

    def preflight(self) -> None:
        """Check gcloud, authentication and Terms of Service without changing anything."""
        emitter = InstructionEmitter(console)
        operator = ConsoleOperator(console, assume_yes=self._yes)
        if not check_prerequisites(GcloudControlPlane(), operator, emitter):
            raise SystemExit(1)
        console.print("[green]All prerequisites met[/green]")

    def run(
        self,
        domain: str | None = None,
        admin: str | None = None,
        org: str | None = None,
        billing: str | None = None,
        output_dir: str | None = None,
    ) -> None:
        """Create and configure the migration project.

        Missing values are asked for interactively.

        Args:
            domain: Google Workspace domain, e.g. example.com
            admin: Super admin email, used as OAuth support email and Chat app visibility
            org: Organization ID (optional, looked up when needed)
            billing: Billing account ID to link (optional)
            output_dir: Where the key and DWD reference files are written (default: cwd)
        """
        log_file = self._log_file or default_log_path()
        configure_logging(self._verbose, log_file)
        logger.debug("Run log: {}", log_file)

        operator = ConsoleOperator(console, assume_yes=self._yes)
        emitter = InstructionEmitter(console)
        control_plane = GcloudControlPlane()

        emitter.header("Prerequisite Checks")
        if not check_prerequisites(control_plane, operator, emitter):
            raise SystemExit(1)

        config = load_config()

        emitter.header("Configuration")
        domain = domain or operator.ask("Enter your Google Workspace domain (e.g. example.com)")
        admin = admin or operator.ask(f"Enter your super admin email (e.g. admin@{domain})")
        if org is None:
            org = operator.ask("Enter your Organization ID (optional, press Enter to skip)")
        if billing is None:
            billing = operator.ask("Enter a billing account ID to link (optional, press Enter to skip)")

        output_path = Path(output_dir).expanduser() if output_dir else Path.cwd()
        if not output_path.exists():
            if not operator.confirm(f"Directory {output_path} does not exist. Create it?", default=True):
                console.print("[red]Output directory not available. Aborting.[/red]")
                raise SystemExit(1)
            try:
                output_path.mkdir(parents=True)
            except OSError as e:
                console.print(f"[red]Could not create {output_path}:[/red] {escape(str(e))}")
                raise SystemExit(1) from e

        try:
            request = ProvisioningRequest(
                domain=str(domain),
                admin_identity=str(admin),
                organization_id=org,
                billing_account_id=billing,
                output_directory=output_path.resolve(),
            )
        except ValidationError as e:
            console.print(f"[red]Invalid input:[/red] {e}")
            raise SystemExit(1) from e

        emitter.configuration(request, config, key_filename(request.domain))
        if not operator.confirm("Proceed with this configuration?", default=True):
            console.print("Setup cancelled.")
            return

        orchestrator = Orchestrator(
            control_plane,
            operator,
            config,
            emitter,
            log_file=log_file,
            cloud_shell=is_cloud_shell(),
        )
        ctx = orchestrator.run(request)
        console.print(f"[dim]Log saved to: {log_file}[/dim]")
        if ctx.fatal:
            raise SystemExit(1)


def main() -> None:
    """Entry point for migsetup CLI."""
    fire.Fire(MigsetupCLI)


if __name__ == "__main__":
    main()
