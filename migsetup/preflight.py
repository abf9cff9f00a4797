"""Prerequisite checks run before anything is created."""

import os
from collections.abc import Mapping

from migsetup.control_plane import ControlPlane
from migsetup.errors import PROVIDER_ERRORS, AuthenticationError, failure_output
from migsetup.gcloud import check_gcloud_installed
from migsetup.instructions import InstructionEmitter
from migsetup.logging import logger
from migsetup.prompts import Operator

_TOS_MARKERS = ("terms of service", "must first accept", "agree to")


def is_cloud_shell(env: Mapping[str, str] | None = None) -> bool:
    """True when running inside Google Cloud Shell."""
    env = os.environ if env is None else env
    return env.get("CLOUD_SHELL", "").lower() == "true" or bool(env.get("DEVSHELL_PROJECT_ID"))


def tos_blocked(output: str) -> bool:
    """True if provider output says the Terms of Service are not accepted yet."""
    lowered = output.lower()
    return any(marker in lowered for marker in _TOS_MARKERS)


def check_authentication(control_plane: ControlPlane) -> str:
    """Return the active gcloud account.

    Raises:
        AuthenticationError: If no account is authenticated.
    """
    account = control_plane.get_active_account()
    if not account:
        msg = "Not authenticated with gcloud. Run: gcloud auth login"
        raise AuthenticationError(msg)
    return account


def _probe_tos(control_plane: ControlPlane) -> bool:
    """True when the Terms of Service block project access."""
    try:
        control_plane.list_projects(limit=1)
    except PROVIDER_ERRORS as e:
        output = failure_output(e)
        if tos_blocked(output):
            return True
        logger.debug("Project listing failed for another reason: {}", output)
    return False


def check_terms_of_service(
    control_plane: ControlPlane, operator: Operator, emitter: InstructionEmitter, cloud_shell: bool
) -> bool:
    """Ask the operator to accept the Terms of Service if needed, then check again once."""
    if not _probe_tos(control_plane):
        return True

    emitter.terms_of_service(cloud_shell)
    operator.pause("Press Enter after accepting the Terms of Service...")
    if _probe_tos(control_plane):
        logger.error("Terms of Service still not accepted")
        return False
    logger.info("Terms of Service accepted")
    return True


def check_prerequisites(
    control_plane: ControlPlane, operator: Operator, emitter: InstructionEmitter
) -> bool:
    """Run every prerequisite check.

    Returns:
        True if the run can start.
    """
    cloud_shell = is_cloud_shell()
    if cloud_shell:
        logger.info("Running in Google Cloud Shell")

    if not check_gcloud_installed():
        logger.error("gcloud CLI not found. Install it: https://cloud.google.com/sdk/docs/install")
        return False

    try:
        account = check_authentication(control_plane)
    except AuthenticationError as e:
        logger.error("{}", e)
        return False
    logger.info("Authenticated as {}", account)

    return check_terms_of_service(control_plane, operator, emitter, cloud_shell)
