"""gcloud-backed implementation of the control-plane operations.

Each method runs one gcloud command (or one REST call for the operations
gcloud lacks) and raises ``GcloudError``/``HttpError`` on failure. Nothing
here decides what a failure means; that is the orchestrator's job.
"""

import contextlib
import json
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from migsetup import api
from migsetup.errors import GcloudError
from migsetup.logging import logger


def check_gcloud_installed() -> bool:
    """Check if gcloud CLI is installed and accessible."""
    return shutil.which("gcloud") is not None


def run_gcloud_command(command: list[str], allow_failure: bool = False) -> str:
    """
    Run a gcloud command and return the output.

    Args:
        command: The gcloud command as a list of strings.
        allow_failure: If True, return empty string on failure instead of raising.

    Returns:
        The stdout from the command.

    Raises:
        GcloudError: If the command fails and allow_failure is False.
    """
    logger.debug("Running: {}", " ".join(command))

    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            check=True,
        )
        if result.stderr:
            for line in result.stderr.strip().split("\n"):
                if line:
                    logger.debug("  {}", line)
        return result.stdout.strip()
    except subprocess.CalledProcessError as e:
        if allow_failure:
            return ""
        error_msg = e.stderr.strip() if e.stderr else "Unknown error"
        raise GcloudError(f"Command failed: {' '.join(command)}\n{error_msg}", error_msg) from e
    except FileNotFoundError as e:
        raise GcloudError(f"{command[0]} CLI not found. Please install the Google Cloud SDK.") from e


def normalize_org_id(organization_id: str) -> str:
    """Bare numeric organization id, accepting ``organizations/123`` too."""
    return organization_id.strip().removeprefix("organizations/")


def org_policy_document(organization_id: str, policy: str, enforced: bool) -> dict[str, Any]:
    """Org Policy v2 document enforcing (or not) a boolean constraint."""
    return {
        "name": f"organizations/{normalize_org_id(organization_id)}/policies/{policy}",
        "spec": {"rules": [{"enforce": enforced}]},
    }


class GcloudControlPlane:
    """Control-plane operations through the gcloud CLI and Google REST APIs."""

    def list_projects(self, limit: int = 1) -> str:
        """List projects (used to probe access and Terms of Service state)."""
        return run_gcloud_command(["gcloud", "projects", "list", f"--limit={limit}"])

    def get_active_account(self) -> str:
        """Email of the authenticated gcloud account, empty if none."""
        output = run_gcloud_command(
            ["gcloud", "auth", "list", "--filter=status:ACTIVE", "--format=value(account)"],
            allow_failure=True,
        )
        return output.splitlines()[0].strip() if output else ""

    def create_project(self, project_id: str, name: str, organization_id: str | None) -> None:
        """Create a new project with an optional organization parent."""
        command = ["gcloud", "projects", "create", project_id, f"--name={name}"]
        if organization_id:
            command.append(f"--organization={normalize_org_id(organization_id)}")
        run_gcloud_command(command)

    def set_active_project(self, project_id: str) -> None:
        """Make a project the active gcloud project."""
        run_gcloud_command(["gcloud", "config", "set", "project", project_id, "--quiet"])

    def get_active_project(self) -> str:
        """Currently active gcloud project, empty if unset."""
        value = run_gcloud_command(["gcloud", "config", "get-value", "project"], allow_failure=True)
        return "" if value == "(unset)" else value

    def describe_project(self, project_id: str) -> dict[str, Any]:
        """Get project information including projectNumber and parent."""
        output = run_gcloud_command(
            ["gcloud", "projects", "describe", project_id, "--format=json"]
        )
        result: dict[str, Any] = json.loads(output) if output else {}
        return result

    def link_billing(self, project_id: str, billing_account_id: str) -> None:
        """Link a project to a billing account."""
        run_gcloud_command(
            [
                "gcloud",
                "billing",
                "projects",
                "link",
                project_id,
                f"--billing-account={billing_account_id}",
            ]
        )

    def enable_service(self, project_id: str, service: str) -> None:
        """Enable a service on a project."""
        run_gcloud_command(
            ["gcloud", "services", "enable", service, f"--project={project_id}", "--quiet"]
        )

    def is_service_enabled(self, project_id: str, service: str) -> bool:
        """Check whether a service is enabled on a project."""
        output = run_gcloud_command(
            [
                "gcloud",
                "services",
                "list",
                f"--project={project_id}",
                "--enabled",
                f"--filter=config.name:{service}",
                "--format=value(config.name)",
            ],
            allow_failure=True,
        )
        return service in output.split()

    def create_service_account(
        self, project_id: str, account_id: str, display_name: str, description: str
    ) -> None:
        """Create a service account in a project."""
        run_gcloud_command(
            [
                "gcloud",
                "iam",
                "service-accounts",
                "create",
                account_id,
                f"--project={project_id}",
                f"--display-name={display_name}",
                f"--description={description}",
            ]
        )

    def bind_project_role(self, project_id: str, member: str, role: str) -> None:
        """Grant a role on the project to a member."""
        run_gcloud_command(
            [
                "gcloud",
                "projects",
                "add-iam-policy-binding",
                project_id,
                f"--member={member}",
                f"--role={role}",
                "--condition=None",
                "--quiet",
            ]
        )

    def describe_service_account(self, project_id: str, email: str) -> dict[str, Any]:
        """Describe a service account (uniqueId, oauth2ClientId, ...)."""
        output = run_gcloud_command(
            [
                "gcloud",
                "iam",
                "service-accounts",
                "describe",
                email,
                f"--project={project_id}",
                "--format=json",
            ]
        )
        result: dict[str, Any] = json.loads(output) if output else {}
        return result

    def get_access_token(self) -> str:
        """Fresh OAuth2 access token of the active gcloud account."""
        return run_gcloud_command(["gcloud", "auth", "print-access-token"])

    def replace_service_account(
        self, email: str, token: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace the full service account resource (IAM PUT)."""
        return api.update_service_account(email, token, body)

    def create_brand(
        self, project_number: str, token: str, title: str, support_email: str
    ) -> dict[str, Any]:
        """Create the OAuth consent screen brand."""
        return api.create_brand(project_number, token, title, support_email)

    def get_project_ancestors(self, project_id: str) -> list[dict[str, str]]:
        """Ancestry chain of a project, nearest first: [{"id": ..., "type": ...}]."""
        output = run_gcloud_command(
            ["gcloud", "projects", "get-ancestors", project_id, "--format=json"]
        )
        ancestors: list[dict[str, str]] = json.loads(output) if output else []
        return ancestors

    def grant_org_role(self, organization_id: str, member: str, role: str) -> None:
        """Grant a role at organization scope."""
        run_gcloud_command(
            [
                "gcloud",
                "organizations",
                "add-iam-policy-binding",
                normalize_org_id(organization_id),
                f"--member={member}",
                f"--role={role}",
                "--quiet",
            ]
        )

    def reset_org_policy(self, organization_id: str, policy: str) -> None:
        """Reset an organization policy to its default (not enforced)."""
        run_gcloud_command(
            [
                "gcloud",
                "org-policies",
                "reset",
                policy,
                f"--organization={normalize_org_id(organization_id)}",
                "--quiet",
            ]
        )

    def set_org_policy_enforcement(
        self, organization_id: str, policy: str, enforced: bool
    ) -> None:
        """Set a boolean constraint through the Org Policy v2 API."""
        # Use a temp file for the policy document
        temp_dir = tempfile.mkdtemp(prefix="migsetup_")
        policy_path = Path(temp_dir) / "policy.yaml"
        try:
            document = org_policy_document(organization_id, policy, enforced)
            policy_path.write_text(yaml.dump(document, default_flow_style=False, sort_keys=False))
            run_gcloud_command(["gcloud", "org-policies", "set-policy", str(policy_path), "--quiet"])
        finally:
            with contextlib.suppress(OSError):
                shutil.rmtree(temp_dir)

    def set_legacy_org_policy_enforcement(
        self, organization_id: str, policy: str, enforced: bool
    ) -> None:
        """Set a boolean constraint through the legacy resource-manager commands."""
        action = "enable-enforce" if enforced else "disable-enforce"
        run_gcloud_command(
            [
                "gcloud",
                "resource-manager",
                "org-policies",
                action,
                policy,
                f"--organization={normalize_org_id(organization_id)}",
                "--quiet",
            ]
        )

    def create_service_account_key(self, project_id: str, email: str, path: Path) -> None:
        """Create a JSON key for a service account, written to ``path``."""
        run_gcloud_command(
            [
                "gcloud",
                "iam",
                "service-accounts",
                "keys",
                "create",
                str(path),
                f"--iam-account={email}",
                f"--project={project_id}",
                "--key-file-type=json",
            ]
        )

    def download_to_local(self, path: Path) -> str:
        """Send a file to the operator's browser from Cloud Shell.

        Uses ``cloudshell download`` or, on older images, ``dl``.

        Returns:
            The tool that started the download.

        Raises:
            GcloudError: If neither tool is available or the download fails.
        """
        for tool in (["cloudshell", "download"], ["dl"]):
            if shutil.which(tool[0]):
                run_gcloud_command([*tool, str(path)])
                return tool[0]
        raise GcloudError("No Cloud Shell download command available")
