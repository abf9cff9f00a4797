"""Shared pytest fixtures for migsetup tests."""

import io
import json
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError
from rich.console import Console

from migsetup.config import ProvisioningRequest, SetupConfig, Timings
from migsetup.errors import GcloudError
from migsetup.instructions import InstructionEmitter

# --- Error Fixtures ---


def make_http_error(
    status: int, reason: str = "unknown", message: str = "", error_status: str = ""
) -> HttpError:
    """Create a mock HttpError with the given status and error body.

    Args:
        status: HTTP status code (e.g., 400, 403, 404, 409, 429, 500)
        reason: Error reason string (e.g., "alreadyExists", "rateLimitExceeded")
        message: error.message of the body
        error_status: error.status of the body (e.g., "PERMISSION_DENIED")

    Returns:
        HttpError with mocked response and content
    """
    resp = MagicMock()
    resp.status = status
    resp.reason = f"Error: {reason}"
    error: dict[str, Any] = {"code": status, "errors": [{"reason": reason}]}
    if message:
        error["message"] = message
    if error_status:
        error["status"] = error_status
    content = json.dumps({"error": error}).encode()
    return HttpError(resp, content, uri="https://iam.googleapis.com/v1/test")


def gcloud_error(stderr: str) -> GcloudError:
    """A failed gcloud command with the given stderr."""
    return GcloudError(f"Command failed: gcloud ...\n{stderr}", stderr)


POLICY_STDERR = (
    "ERROR: (gcloud.iam.service-accounts.keys.create) FAILED_PRECONDITION: "
    "Key creation is not allowed on this service account.\n"
    "- '@type': type.googleapis.com/google.rpc.PreconditionFailure\n"
    "  violations:\n"
    "  - description: Key creation is not allowed on this service account.\n"
    "    type: constraints/iam.disableServiceAccountKeyCreation"
)

BILLING_STDERR = (
    "ERROR: (gcloud.services.enable) FAILED_PRECONDITION: Billing account for project "
    "'123456' is not found. Billing must be enabled for activation of service(s)."
)

QUOTA_STDERR = (
    "ERROR: (gcloud.projects.create) Operation could not be completed: "
    "project creation quota exceeded."
)

EXISTS_STDERR = (
    "ERROR: (gcloud.iam.service-accounts.create) Service account cloudasta-migration "
    "already exists within project projects/acme-proj-1."
)


@pytest.fixture
def policy_error() -> GcloudError:
    """Key creation refused by the organization policy."""
    return gcloud_error(POLICY_STDERR)


@pytest.fixture
def billing_error() -> GcloudError:
    """API enablement refused for lack of billing."""
    return gcloud_error(BILLING_STDERR)


@pytest.fixture
def rate_limit_error() -> HttpError:
    """Create a 429 rateLimitExceeded error."""
    return make_http_error(429, "rateLimitExceeded")


@pytest.fixture
def server_error() -> HttpError:
    """Create a 500 internalError error."""
    return make_http_error(500, "internalError")


# --- Fakes ---


class FakeControlPlane:
    """In-memory control plane recording every call.

    Set ``errors[<method>]`` to make a method raise, ``service_errors[<api>]`` to
    fail one API, and queue ``key_errors`` (None means success) for key creation.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.errors: dict[str, BaseException] = {}
        self.service_errors: dict[str, BaseException] = {}
        self.key_errors: list[BaseException | None] = []
        self.account = "admin@example.com"
        self.active_project = ""
        self.enabled: set[str] = set()
        self.project_number = "987654321"
        self.unique_id = "112233445566778899"
        self.token = "ya29.test-token"
        self.put_response: dict[str, Any] | None = None
        self.ancestors: list[dict[str, str]] = [
            {"id": "acme-proj-1", "type": "project"},
            {"id": "organizations/123", "type": "organization"},
        ]

    def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.errors:
            raise self.errors[name]

    def called(self, name: str) -> list[tuple[Any, ...]]:
        """Arguments of every call to a method, in order."""
        return [args for n, args in self.calls if n == name]

    def list_projects(self, limit: int = 1) -> str:
        self._call("list_projects", limit)
        return "PROJECT_ID"

    def get_active_account(self) -> str:
        self._call("get_active_account")
        return self.account

    def create_project(self, project_id: str, name: str, organization_id: str | None) -> None:
        self._call("create_project", project_id, name, organization_id)

    def set_active_project(self, project_id: str) -> None:
        self._call("set_active_project", project_id)
        self.active_project = project_id

    def get_active_project(self) -> str:
        self._call("get_active_project")
        return self.active_project

    def describe_project(self, project_id: str) -> dict[str, Any]:
        self._call("describe_project", project_id)
        if not self.project_number:
            return {"projectId": project_id}
        return {"projectId": project_id, "projectNumber": self.project_number}

    def link_billing(self, project_id: str, billing_account_id: str) -> None:
        self._call("link_billing", project_id, billing_account_id)

    def enable_service(self, project_id: str, service: str) -> None:
        self._call("enable_service", project_id, service)
        if service in self.service_errors:
            raise self.service_errors[service]
        self.enabled.add(service)

    def is_service_enabled(self, project_id: str, service: str) -> bool:
        self._call("is_service_enabled", project_id, service)
        return service in self.enabled

    def create_service_account(
        self, project_id: str, account_id: str, display_name: str, description: str
    ) -> None:
        self._call("create_service_account", project_id, account_id, display_name, description)

    def bind_project_role(self, project_id: str, member: str, role: str) -> None:
        self._call("bind_project_role", project_id, member, role)

    def describe_service_account(self, project_id: str, email: str) -> dict[str, Any]:
        self._call("describe_service_account", project_id, email)
        return {"email": email, "uniqueId": self.unique_id}

    def get_access_token(self) -> str:
        self._call("get_access_token")
        return self.token

    def replace_service_account(
        self, email: str, token: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        self._call("replace_service_account", email, token, body)
        if self.put_response is not None:
            return self.put_response
        return {"email": email, **body}

    def create_brand(
        self, project_number: str, token: str, title: str, support_email: str
    ) -> dict[str, Any]:
        self._call("create_brand", project_number, token, title, support_email)
        return {"name": f"projects/{project_number}/brands/{project_number}"}

    def get_project_ancestors(self, project_id: str) -> list[dict[str, str]]:
        self._call("get_project_ancestors", project_id)
        return self.ancestors

    def grant_org_role(self, organization_id: str, member: str, role: str) -> None:
        self._call("grant_org_role", organization_id, member, role)

    def reset_org_policy(self, organization_id: str, policy: str) -> None:
        self._call("reset_org_policy", organization_id, policy)

    def set_org_policy_enforcement(
        self, organization_id: str, policy: str, enforced: bool
    ) -> None:
        self._call("set_org_policy_enforcement", organization_id, policy, enforced)

    def set_legacy_org_policy_enforcement(
        self, organization_id: str, policy: str, enforced: bool
    ) -> None:
        self._call("set_legacy_org_policy_enforcement", organization_id, policy, enforced)

    def create_service_account_key(self, project_id: str, email: str, path: Path) -> None:
        self._call("create_service_account_key", project_id, email, path)
        error = self.key_errors.pop(0) if self.key_errors else None
        if error is not None:
            raise error
        path.write_text(json.dumps({"type": "service_account", "client_email": email}))

    def download_to_local(self, path: Path) -> str:
        self._call("download_to_local", path)
        return "cloudshell"


class ScriptedOperator:
    """Operator answering from scripted lists, then with defaults."""

    def __init__(
        self,
        confirms: list[bool] | None = None,
        answers: list[str] | None = None,
        default_confirm: bool = True,
    ) -> None:
        self.confirms = list(confirms or [])
        self.answers = list(answers or [])
        self.default_confirm = default_confirm
        self.questions: list[str] = []
        self.pauses: list[str] = []

    def confirm(self, question: str, default: bool = False) -> bool:
        self.questions.append(question)
        return self.confirms.pop(0) if self.confirms else self.default_confirm

    def ask(self, question: str, default: str = "") -> str:
        self.questions.append(question)
        return self.answers.pop(0) if self.answers else default

    def pause(self, message: str) -> None:
        self.pauses.append(message)


class SleepRecorder:
    """Injectable sleep that records the requested durations."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_cp() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def operator() -> ScriptedOperator:
    return ScriptedOperator()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def output() -> io.StringIO:
    """Captured console output."""
    return io.StringIO()


@pytest.fixture
def emitter(output: io.StringIO) -> InstructionEmitter:
    """Emitter printing to a wide in-memory console."""
    return InstructionEmitter(Console(file=output, width=400, color_system=None))


@pytest.fixture
def config() -> SetupConfig:
    """Default config with the real timings (sleep is always injected)."""
    return SetupConfig(timings=Timings())


@pytest.fixture
def request_factory(tmp_path: Path) -> Any:
    """Build ProvisioningRequests writing into tmp_path."""

    def _make(**overrides: Any) -> ProvisioningRequest:
        values: dict[str, Any] = {
            "domain": "example.com",
            "admin_identity": "admin@example.com",
            "output_directory": tmp_path / "out",
        }
        values.update(overrides)
        return ProvisioningRequest(**values)

    return _make


@pytest.fixture(autouse=True)
def temp_keys_in_tmp_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep scratch key files out of the system temp directory."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(
        "migsetup.orchestrator.temp_key_path", lambda project_id: scratch / f"sa-key-{project_id}.json"
    )
