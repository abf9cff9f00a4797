"""Configuration loading for migsetup.

Every setting has a default, so the config file is optional. Example
~/.migsetup/config.toml:

    project_name = "Cloudasta-Migration"
    service_account_name = "cloudasta-migration"

    [timings]
    iam_propagation_seconds = 10
    key_retry_waits = [15, 30, 60, 120]
"""

import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Service Usage must come first: it is the meta-API that enables the others.
# IAP backs the OAuth consent screen, Org Policy backs the key-policy recovery.
REQUIRED_APIS = [
    "serviceusage.googleapis.com",
    "iap.googleapis.com",
    "orgpolicy.googleapis.com",
    "admin.googleapis.com",
    "gmail.googleapis.com",
    "calendar-json.googleapis.com",
    "drive.googleapis.com",
    "people.googleapis.com",
    "tasks.googleapis.com",
    "forms.googleapis.com",
    "groupsmigration.googleapis.com",
    "chat.googleapis.com",
    "groupssettings.googleapis.com",
]

IAP_API = "iap.googleapis.com"
KEY_CREATION_POLICY = "iam.disableServiceAccountKeyCreation"


class Timings(BaseModel):  # type: ignore[misc]
    """Fixed waits used by the provisioning run.

    Attributes:
        iam_propagation_seconds: Pause after granting the org policy admin role.
        iap_propagation_seconds: Pause after enabling the IAP API on demand.
        key_retry_waits: Literal backoff schedule for key creation retries.
            One attempt is made after each wait.
    """

    iam_propagation_seconds: float = 10.0
    iap_propagation_seconds: float = 5.0
    key_retry_waits: list[float] = [15.0, 30.0, 60.0, 120.0]

    @field_validator("iam_propagation_seconds", "iap_propagation_seconds")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_delay(cls, v: float) -> float:
        """Ensure delays are non-negative."""
        if v < 0:
            msg = "Delays must be non-negative"
            raise ValueError(msg)
        return v

    @field_validator("key_retry_waits")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_waits(cls, v: list[float]) -> list[float]:
        """Require a non-empty schedule of non-negative waits."""
        if not v:
            msg = "key_retry_waits must contain at least one wait"
            raise ValueError(msg)
        if any(w < 0 for w in v):
            msg = "key_retry_waits must be non-negative"
            raise ValueError(msg)
        return v


class SetupConfig(BaseModel):  # type: ignore[misc]
    """migsetup configuration (names, roles and timings)."""

    project_name: str = "Cloudasta-Migration"
    service_account_name: str = "cloudasta-migration"
    display_name: str = "Cloudasta-Migration"
    chat_app_name: str = "Cloudasta-Migration"
    chat_description: str = "CloudM Migrate"
    chat_avatar_url: str = (
        "https://images.g2crowd.com/uploads/product/image/social_landscape/"
        "social_landscape_cee2152a5febe154fc27f9af97b8f3dc/cloudasta-by-shuttlecloud.png"
    )
    service_account_description: str = "CloudM Migrate service account for {domain}"
    service_account_role: str = "roles/owner"
    policy_admin_role: str = "roles/orgpolicy.policyAdmin"
    key_policy: str = KEY_CREATION_POLICY
    required_apis: list[str] = REQUIRED_APIS
    timings: Timings = Timings()

    @field_validator("service_account_name")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_service_account_name(cls, v: str) -> str:
        """Service account ids are 6-30 lowercase letters, digits and dashes."""
        if not 6 <= len(v) <= 30 or not v.replace("-", "").isalnum() or v != v.lower():
            msg = "Service account name must be 6-30 lowercase alphanumerics or dashes"
            raise ValueError(msg)
        return v

    @field_validator("required_apis")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_required_apis(cls, v: list[str]) -> list[str]:
        """Reject an empty API list."""
        if not v:
            msg = "required_apis must not be empty"
            raise ValueError(msg)
        return v

    def describe_service_account(self, domain: str) -> str:
        """Service account description for a domain."""
        return self.service_account_description.format(domain=domain)


class ProvisioningRequest(BaseModel):  # type: ignore[misc]
    """Operator-supplied parameters for one run. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    domain: str
    admin_identity: str
    organization_id: str | None = None
    billing_account_id: str | None = None
    output_directory: Path = Field(default_factory=Path.cwd)

    @field_validator("domain", "admin_identity")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_required(cls, v: str) -> str:
        """Domain and admin identity must be non-empty."""
        v = v.strip()
        if not v:
            msg = "must not be empty"
            raise ValueError(msg)
        return v

    @field_validator("organization_id", "billing_account_id", mode="before")  # type: ignore[untyped-decorator]
    @classmethod
    def blank_to_none(cls, v: object) -> object:
        """Treat blank optional answers as not supplied."""
        if v is None:
            return None
        text = str(v).strip()
        return text or None


def get_config_dir() -> Path:
    """Get or create config directory."""
    config_dir = Path.home() / ".migsetup"
    config_dir.mkdir(exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    """Path of the optional TOML config file."""
    return get_config_dir() / "config.toml"


def load_config(path: Path | None = None) -> SetupConfig:
    """Load configuration, falling back to defaults when no file exists."""
    config_path = path or get_config_path()
    if not config_path.exists():
        return SetupConfig()
    with open(config_path, "rb") as f:
        data = tomllib.load(f)
    config: SetupConfig = SetupConfig.model_validate(data)
    return config
