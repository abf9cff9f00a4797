"""Control-plane contract consumed by the orchestrator.

Any object with these methods can drive a run: ``GcloudControlPlane`` in
production, fakes in tests. Failures are raised as exceptions and turned
into a ``FailureCategory`` by the orchestrator's classifier.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ControlPlane(Protocol):
    """Project, IAM, service usage and organization policy operations."""

    def list_projects(self, limit: int = 1) -> str: ...

    def get_active_account(self) -> str: ...

    def create_project(self, project_id: str, name: str, organization_id: str | None) -> None: ...

    def set_active_project(self, project_id: str) -> None: ...

    def get_active_project(self) -> str: ...

    def describe_project(self, project_id: str) -> dict[str, Any]: ...

    def link_billing(self, project_id: str, billing_account_id: str) -> None: ...

    def enable_service(self, project_id: str, service: str) -> None: ...

    def is_service_enabled(self, project_id: str, service: str) -> bool: ...

    def create_service_account(
        self, project_id: str, account_id: str, display_name: str, description: str
    ) -> None: ...

    def bind_project_role(self, project_id: str, member: str, role: str) -> None: ...

    def describe_service_account(self, project_id: str, email: str) -> dict[str, Any]: ...

    def get_access_token(self) -> str: ...

    def replace_service_account(
        self, email: str, token: str, body: dict[str, Any]
    ) -> dict[str, Any]: ...

    def create_brand(
        self, project_number: str, token: str, title: str, support_email: str
    ) -> dict[str, Any]: ...

    def get_project_ancestors(self, project_id: str) -> list[dict[str, str]]: ...

    def grant_org_role(self, organization_id: str, member: str, role: str) -> None: ...

    def reset_org_policy(self, organization_id: str, policy: str) -> None: ...

    def set_org_policy_enforcement(
        self, organization_id: str, policy: str, enforced: bool
    ) -> None: ...

    def set_legacy_org_policy_enforcement(
        self, organization_id: str, policy: str, enforced: bool
    ) -> None: ...

    def create_service_account_key(self, project_id: str, email: str, path: Path) -> None: ...

    def download_to_local(self, path: Path) -> str: ...
