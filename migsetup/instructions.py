"""Human-facing instructions and the end-of-run summary.

Everything the operator must do by hand is printed here, always with the
literal command or console URL to use.
"""

from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from migsetup.config import ProvisioningRequest, SetupConfig
from migsetup.errors import FailureCategory
from migsetup.models import Automation, CapabilityResult, RunContext
from migsetup.scopes import CHAT_SCOPES, STANDARD_SCOPES, all_scopes, dwd_url

CONSOLE_URL = "https://console.cloud.google.com"

_AUTOMATION_STYLE = {
    Automation.AUTOMATED: "[green]✓ automated[/green]",
    Automation.FALLBACK: "[yellow]✓ automated with fallback[/yellow]",
    Automation.MANUAL: "[red]! manual required[/red]",
}

_CAPABILITY_REASON = {
    FailureCategory.BILLING_REQUIRED: "billing account required",
    FailureCategory.PERMISSION_DENIED: "permission denied",
    FailureCategory.NOT_FOUND: "API name not found or invalid",
}


def policy_manual_steps(policy: str) -> list[str]:
    """Console steps to switch off an organization policy by hand."""
    return [
        "Select your [bold]Organization[/bold] (not the project) in the GCP Console",
        "Go to [green]IAM & Admin > IAM[/green]",
        "Select your Admin Account",
        "Grant the [green]Organization Policy Administrator[/green] role",
        "Go to [green]IAM & Admin > Organization Policies[/green]",
        f"Filter by Policy ID: [green]{policy}[/green]",
        "Select the Active Policy",
        "Click [bold]Manage Policy[/bold]",
        "Expand the [bold]Enforced[/bold] dropdown > Select [green]OFF[/green] > Click [bold]Done[/bold]",
        "Click [bold]Set Policy[/bold]",
    ]


def key_create_command(key_name: str, email: str, project_id: str) -> str:
    return (
        f"gcloud iam service-accounts keys create {key_name} "
        f"--iam-account={email} --project={project_id}"
    )


def enable_command(api: str, project_id: str) -> str:
    return f"gcloud services enable {api} --project={project_id}"


def teardown_command(project_id: str) -> str:
    return f"gcloud projects delete {project_id}"


class InstructionEmitter:
    """Renders instructions on a rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def header(self, title: str) -> None:
        self.console.print()
        self.console.rule(f"[bold cyan]{title}[/bold cyan]", style="blue")

    def _numbered(self, lines: list[str]) -> None:
        for i, line in enumerate(lines, 1):
            self.console.print(f"  {i}. {line}")

    # --- preflight / input ---

    def terms_of_service(self, cloud_shell: bool) -> None:
        where = "in a new tab" if cloud_shell else "in your browser"
        self.console.print(
            Panel(
                "You need to accept the Google Cloud Terms of Service before\n"
                "this tool can create projects and resources.\n\n"
                f"Open this link {where} to accept them:\n  {CONSOLE_URL}",
                title="ACTION REQUIRED: Accept GCP Terms of Service",
                border_style="yellow",
            )
        )

    def configuration(self, request: ProvisioningRequest, config: SetupConfig, key_name: str) -> None:
        table = Table(title="Configuration Summary", show_header=False, box=None)
        table.add_column("Setting", style="bold")
        table.add_column("Value", style="green")
        table.add_row("Project Name", config.project_name)
        table.add_row("Service Account", config.service_account_name)
        table.add_row("Domain", request.domain)
        table.add_row("Admin Email", request.admin_identity)
        table.add_row("Key Filename", key_name)
        table.add_row("Output Directory", str(request.output_directory))
        if request.organization_id:
            table.add_row("Organization ID", request.organization_id)
        if request.billing_account_id:
            table.add_row("Billing Account", request.billing_account_id)
        self.console.print(table)

    # --- step 1 / 4 ---

    def project_create_failed(self, category: FailureCategory, output: str) -> None:
        if category == FailureCategory.QUOTA_EXCEEDED:
            self.console.print("[red]Project creation quota exceeded.[/red]")
            self.console.print("  GCP limits the number of projects you can create (typically 25).")
            self.console.print(
                f"  Delete unused projects at: {CONSOLE_URL}/cloud-resource-manager"
            )
        elif category == FailureCategory.ALREADY_EXISTS:
            self.console.print("[red]A project with a similar ID already exists.[/red]")
        else:
            self.console.print("[red]Failed to create project.[/red]")
            self.console.print(f"  Error: {escape(output)}")

    def capability_failed(self, result: CapabilityResult) -> None:
        reason = _CAPABILITY_REASON.get(result.category or FailureCategory.OTHER)
        suffix = f" ({reason})" if reason else ""
        self.console.print(f"  [yellow]Could not enable {result.name}{suffix}.[/yellow]")
        if result.message:
            self.console.print(f"    [dim]Output: {escape(result.message)}[/dim]")
        if result.category == FailureCategory.PERMISSION_DENIED:
            self.console.print(
                "    Ensure you have 'Service Usage Admin' or 'Editor' role on this project."
            )

    def billing_required(self, project_id: str) -> None:
        self.console.print("[yellow]Some APIs require a billing account linked to the project.[/yellow]")
        self.console.print(
            f"  Link billing at: {CONSOLE_URL}/billing/linkedaccount?project={project_id}"
        )

    def enable_commands(self, project_id: str, failed: list[CapabilityResult]) -> None:
        self.console.print("  Enable the failed APIs manually (or re-run after fixing the cause):")
        for result in failed:
            self.console.print(f"    {enable_command(result.name, project_id)}")

    def all_capabilities_failed(self, project_id: str) -> None:
        self.console.print("[red]ALL APIs failed to enable. Common causes:[/red]")
        self._numbered(
            [
                f"Billing account not linked to project {project_id}",
                "Insufficient permissions (need Editor or Owner role)",
                "Organization policies blocking API enablement",
            ]
        )

    def billing_link_failed(self, project_id: str, billing_account_id: str) -> None:
        self.console.print("  Link it manually:")
        self.console.print(
            f"    gcloud billing projects link {project_id} --billing-account={billing_account_id}"
        )

    # --- step 5 / 6 / 7 ---

    def role_bind_failed(self, email: str, role: str) -> None:
        self.console.print(f"  Grant it manually: IAM & Admin > IAM > {email} > Add role: {role}")

    def delegation_manual(self, email: str, client_id: str) -> None:
        self.console.print("You will need to enable DWD manually:")
        self._numbered(
            [
                f"Open [green]IAM & Admin > Service Accounts > {email}[/green]",
                "Click the service account > Show Advanced Settings",
                "Look for the Domain-wide Delegation section",
            ]
        )
        self.console.print(f"  Client ID to use: [bold]{client_id}[/bold]")

    def brand_manual(self, project_id: str, title: str, support_email: str) -> None:
        self.console.print("You need to configure the OAuth consent screen manually:")
        self._numbered(
            [
                f"Open: {CONSOLE_URL}/apis/credentials/consent?project={project_id}",
                "Select 'Internal' user type",
                f"App name: {title}",
                f"Support email: {support_email}",
                "Click Save",
            ]
        )

    # --- step 8 ---

    def key_policy_blocked(self, policy: str) -> None:
        self.console.print(
            Panel(
                "An Organization Policy that blocks service account key creation\n"
                "is enforced on your organization.\n\n"
                f"Enforced Organization Policy ID: [red]{policy}[/red]",
                title=f"AUTO-RESOLVE: {policy}",
                border_style="yellow",
            )
        )
        self.policy_manual(policy)

    def policy_manual(self, policy: str) -> None:
        self.console.print("[cyan]Manual Resolution Steps:[/cyan]")
        self._numbered(policy_manual_steps(policy))

    def key_manual_command(self, key_name: str, email: str, project_id: str) -> None:
        self.console.print("Create the key manually once the cause is fixed:")
        self.console.print(f"  {key_create_command(key_name, email, project_id)}")

    def key_download_started(self) -> None:
        self.console.print("[green]Download initiated.[/green] Check your browser for the download prompt.")

    def key_download_manual(self, path: Path) -> None:
        self.console.print("[yellow]Could not trigger automatic download.[/yellow]")
        self.console.print("Download the file manually from Cloud Shell: click the three-dot menu > Download file")
        self.console.print(f"  File path: {escape(str(path))}")

    def key_retry_exhausted(
        self, attempts: int, waited: float, key_name: str, email: str, project_id: str
    ) -> None:
        self.console.print(
            f"[red]Key creation failed after {attempts} attempts "
            f"(waited {waited:.0f} seconds total).[/red]"
        )
        self.console.print("Propagation may need more time. Run this command manually in a few minutes:")
        self.console.print(f"  {key_create_command(key_name, email, project_id)}")

    def policy_restore_manual(self, policy: str) -> None:
        self.console.print("Remember to re-enable it manually for security:")
        self.console.print(f"  IAM & Admin > Organization Policies > {policy} > Enforce ON")

    # --- step 9 ---

    def delegation_link(self, client_id: str) -> None:
        scopes = all_scopes()
        self.console.print(
            Panel(
                f"Open the link below: the Admin Console DWD page opens with the\n"
                f"Client ID and all {len(scopes)} OAuth scopes pre-filled.\n"
                "You only need to click [bold]Authorize[/bold].",
                title="ONE-CLICK DWD SETUP",
                border_style="green",
            )
        )
        # Plain print: the URL must stay on one line to be clickable
        self.console.print(dwd_url(client_id), soft_wrap=True, markup=False)
        self.console.print()
        self.console.print("[yellow]Note: Changes may take up to 24 hours to propagate.[/yellow]")
        self.console.print(f"  [bold]Client ID:[/bold]    {client_id}")
        self.console.print(
            f"  [bold]Total Scopes:[/bold] {len(scopes)} "
            f"({len(STANDARD_SCOPES)} standard + {len(CHAT_SCOPES)} Chat)"
        )

    def chat_app(self, config: SetupConfig, project_id: str, request: ProvisioningRequest) -> None:
        url = (
            "https://console.developers.google.com/apis/api/chat.googleapis.com/"
            f"hangouts-chat?project={project_id}"
        )
        self.console.print(
            Panel(
                "The Chat API app configuration must be done in the GCP Console.\n"
                f"{url}",
                title="MANUAL STEP REQUIRED: Chat API App Configuration",
                border_style="yellow",
            )
        )
        table = Table(show_header=False, box=None)
        table.add_column("Setting", style="bold")
        table.add_column("Value", style="green")
        table.add_row("App Name", config.chat_app_name)
        table.add_row("Avatar URL", config.chat_avatar_url)
        table.add_row("Description", f"{config.chat_description} (max 40 characters)")
        table.add_row("Build as a Workspace add-on", "[red]DISABLED (untick)[/red]")
        table.add_row("Log errors to Logging", "ENABLED")
        table.add_row("Join spaces and group conversations", "ENABLED")
        table.add_row("Connection type", "HTTP endpoint URL")
        table.add_row("HTTP endpoint URL", f"https://{request.domain}")
        table.add_row("Authentication Audience", "Project Number")
        table.add_row("Visibility", request.admin_identity)
        table.add_row("App Status", "LIVE - available to users")
        self.console.print(table)
        self.console.print(
            f"  [yellow]TIP: add a Google Group (e.g. migration-users@{request.domain}) with all "
            "migrating users under Visibility.[/yellow]"
        )
        self.console.print("  Click [bold]Save[/bold]")

    def drive_sdk(self) -> None:
        self.console.print("[cyan]Ensure the Drive SDK is enabled for your users:[/cyan]")
        self._numbered(
            [
                "Go to: https://admin.google.com",
                "Navigate to: Apps > Google Workspace > Drive and Docs",
                "Click: Features and Applications",
                "Enable: Allow users to access Google Drive with the Drive SDK API",
            ]
        )

    def summary(self, ctx: RunContext, log_file: Path | None = None) -> None:
        """Per-step outcome, resource identifiers and produced files."""
        table = Table(title="Setup Summary", show_header=True, header_style="bold")
        table.add_column("Step", style="cyan")
        table.add_column("Outcome")
        table.add_column("Detail", style="dim")
        for rec in ctx.records:
            table.add_row(rec.name, _AUTOMATION_STYLE[rec.automation], rec.detail)
        self.console.print(table)

        self.console.print("[bold]Manual Steps Remaining:[/bold]")
        if not ctx.delegation.enabled_on_provider:
            self.console.print("  [yellow]![/yellow] Enable DWD on the service account in the GCP Console")
        self.console.print("  [yellow]![/yellow] Authorize the DWD client and scopes in the Google Admin Console")
        self.console.print("  [yellow]![/yellow] Configure the Chat API app in the GCP Console")
        self.console.print("  [yellow]![/yellow] Verify the Drive SDK is enabled")

        values = Table(title="Important Values", show_header=False, box=None)
        values.add_column("Name", style="bold")
        values.add_column("Value", style="green")
        if ctx.project:
            values.add_row("Project ID", ctx.project.project_id)
        if ctx.service_account:
            values.add_row("Service Account", ctx.service_account.email)
            values.add_row("Client ID (for DWD)", ctx.service_account.unique_id or "-")
        values.add_row("Service Account Key", str(ctx.key.path) if ctx.key.created else "not created")
        if ctx.reference_path:
            values.add_row("DWD Helper File", str(ctx.reference_path))
        if log_file:
            values.add_row("Log File", str(log_file))
        self.console.print(values)

    def fatal(self, step: str, detail: str) -> None:
        self.console.print(
            Panel(f"[red]{escape(detail)}[/red]", title=f"Aborted at: {step}", border_style="red")
        )

    def teardown(self, project_id: str) -> None:
        self.console.print(
            "[cyan]If something went wrong and you want to start over, delete the project "
            "and re-run:[/cyan]"
        )
        self.console.print(f"  [yellow]{teardown_command(project_id)}[/yellow]")
