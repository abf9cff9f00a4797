"""Data models for a provisioning run.

Everything here lives for one run only. ``RunContext`` is immutable: steps
return an updated copy built with ``dataclasses.replace``.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

from migsetup.config import ProvisioningRequest
from migsetup.errors import FailureCategory


class StepStatus(str, Enum):
    """Outcome tag of a provisioning step."""

    SUCCESS = "success"
    DEGRADED = "degraded"  # primary goal missed, manual follow-up recorded
    FATAL = "fatal"  # aborts the run


class Automation(str, Enum):
    """How a step ended up being done, as shown in the summary."""

    AUTOMATED = "automated"
    FALLBACK = "automated with fallback"
    MANUAL = "manual required"


class KeyStatus(str, Enum):
    """Outcome of service account key creation."""

    CREATED = "created"
    BLOCKED_BY_POLICY = "blocked_by_policy"
    FAILED_OTHER = "failed_other"
    NOT_CREATED = "not_created"


@dataclass(frozen=True)
class ProjectHandle:
    """The project the run operates on."""

    project_id: str
    project_number: str | None = None
    adopted: bool = False  # existing project supplied by the operator


@dataclass(frozen=True)
class ServiceAccountHandle:
    """The migration service account."""

    email: str
    unique_id: str | None = None
    created: bool = True

    def with_unique_id(self, unique_id: str) -> "ServiceAccountHandle":
        """Resolve the unique id. Once set it never changes."""
        if self.unique_id and self.unique_id != unique_id:
            msg = f"Unique id already resolved for {self.email}: {self.unique_id}"
            raise ValueError(msg)
        return replace(self, unique_id=unique_id)


@dataclass(frozen=True)
class CapabilityResult:
    """Result of enabling one API."""

    name: str
    succeeded: bool
    category: FailureCategory | None = None
    message: str = ""


@dataclass(frozen=True)
class DelegationState:
    """Whether domain-wide delegation was confirmed on the provider side."""

    enabled_on_provider: bool = False


@dataclass(frozen=True)
class KeyCreationOutcome:
    """Where the credential file ended up, if anywhere."""

    status: KeyStatus = KeyStatus.NOT_CREATED
    path: Path | None = None

    @property
    def created(self) -> bool:
        return self.status == KeyStatus.CREATED and self.path is not None


@dataclass
class OrgPolicyRecoveryState:
    """Progress of the policy-blocked key recovery. Discarded after the sub-flow."""

    organization_id: str = ""
    role_granted: bool = False
    policy_disabled: bool = False
    attempts_made: int = 0
    total_wait_seconds: float = 0.0
    key_created: bool = False
    policy_restored: bool = False


@dataclass(frozen=True)
class StepRecord:
    """A finished step as shown in the run summary."""

    name: str
    status: StepStatus
    detail: str = ""
    fallback: bool = False

    @property
    def automation(self) -> Automation:
        if self.status != StepStatus.SUCCESS:
            return Automation.MANUAL
        return Automation.FALLBACK if self.fallback else Automation.AUTOMATED


@dataclass(frozen=True)
class RunContext:
    """State threaded through every provisioning step."""

    request: ProvisioningRequest
    project: ProjectHandle | None = None
    service_account: ServiceAccountHandle | None = None
    capabilities: tuple[CapabilityResult, ...] = ()
    billing_needed: bool = False
    delegation: DelegationState = field(default_factory=DelegationState)
    brand_configured: bool = False
    key: KeyCreationOutcome = field(default_factory=KeyCreationOutcome)
    reference_path: Path | None = None
    records: tuple[StepRecord, ...] = ()

    @property
    def project_id(self) -> str:
        """Project id, raising if no project has been established yet."""
        if self.project is None:
            msg = "No project established for this run"
            raise RuntimeError(msg)
        return self.project.project_id

    @property
    def succeeded_capabilities(self) -> list[CapabilityResult]:
        return [c for c in self.capabilities if c.succeeded]

    @property
    def failed_capabilities(self) -> list[CapabilityResult]:
        return [c for c in self.capabilities if not c.succeeded]

    def record(
        self, name: str, status: StepStatus, detail: str = "", fallback: bool = False
    ) -> "RunContext":
        """Return a copy with one more step record."""
        return replace(self, records=(*self.records, StepRecord(name, status, detail, fallback)))

    def record_of(self, name: str) -> StepRecord | None:
        """Record of a step, None if it never ran."""
        for rec in self.records:
            if rec.name == name:
                return rec
        return None

    @property
    def fatal(self) -> StepRecord | None:
        """The step that aborted the run, if any."""
        for rec in self.records:
            if rec.status == StepStatus.FATAL:
                return rec
        return None


@dataclass(frozen=True)
class StepResult:
    """Tagged result returned by every step."""

    status: StepStatus
    context: RunContext
    detail: str = ""
    fallback: bool = False  # goal reached, but not the first way tried

    @classmethod
    def success(
        cls, context: RunContext, detail: str = "", fallback: bool = False
    ) -> "StepResult":
        return cls(StepStatus.SUCCESS, context, detail, fallback)

    @classmethod
    def degraded(cls, context: RunContext, detail: str) -> "StepResult":
        return cls(StepStatus.DEGRADED, context, detail)

    @classmethod
    def fatal(cls, context: RunContext, detail: str) -> "StepResult":
        return cls(StepStatus.FATAL, context, detail)
