"""migsetup - Google Cloud setup for Google Workspace migrations."""

from migsetup.config import ProvisioningRequest, SetupConfig
from migsetup.models import RunContext, StepStatus

try:
    from migsetup._version import __version__
except ImportError:
    __version__ = "0.0.0.dev0"

__all__ = ["ProvisioningRequest", "RunContext", "SetupConfig", "StepStatus", "__version__"]
