"""Recovery from an organization policy that blocks service account keys.

When ``iam.disableServiceAccountKeyCreation`` is enforced, key creation is
refused. With the operator's consent this sub-flow grants the admin the
Organization Policy Administrator role, switches enforcement off, retries key
creation on a fixed schedule and finally offers to switch enforcement back on.

Nothing here raises to the caller: every failure ends in a warning, a manual
instruction, or a NOT_CREATED outcome.
"""

import time
from collections.abc import Callable

from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_none

from migsetup.config import ProvisioningRequest, SetupConfig
from migsetup.control_plane import ControlPlane
from migsetup.errors import PROVIDER_ERRORS, failure_output
from migsetup.instructions import InstructionEmitter
from migsetup.logging import logger
from migsetup.models import KeyCreationOutcome, OrgPolicyRecoveryState
from migsetup.prompts import Operator

KeyAttempt = Callable[[], KeyCreationOutcome]


class KeyPolicyRecovery:
    """Policy-blocked key creation recovery."""

    def __init__(
        self,
        control_plane: ControlPlane,
        operator: Operator,
        config: SetupConfig,
        emitter: InstructionEmitter,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.control_plane = control_plane
        self.operator = operator
        self.config = config
        self.emitter = emitter
        self.sleep = sleep

    @property
    def policy(self) -> str:
        return self.config.key_policy

    def run(
        self,
        request: ProvisioningRequest,
        project_id: str,
        email: str,
        key_name: str,
        attempt: KeyAttempt,
    ) -> tuple[OrgPolicyRecoveryState, KeyCreationOutcome]:
        """Run the recovery sub-flow.

        Args:
            request: The provisioning request (admin identity, organization id)
            project_id: Project owning the service account
            email: Service account email, used in the manual command
            key_name: Key filename, used in the manual command
            attempt: Makes exactly one key creation attempt

        Returns:
            The recovery progress and the final key outcome.
        """
        state = OrgPolicyRecoveryState()

        self.emitter.key_policy_blocked(self.policy)
        if not self.operator.confirm(
            "Would you like this tool to attempt to resolve this automatically?", default=True
        ):
            logger.info("Automatic resolution declined")
            self.emitter.key_manual_command(key_name, email, project_id)
            return state, KeyCreationOutcome()

        state.organization_id = self.resolve_organization_id(request, project_id)
        if not state.organization_id:
            logger.error("No organization ID available, cannot change the policy")
            self.emitter.key_manual_command(key_name, email, project_id)
            return state, KeyCreationOutcome()

        self._grant_policy_admin(state, request.admin_identity)
        self._disable_policy(state)

        outcome = self._retry_key_creation(state, attempt)
        if not outcome.created:
            self.emitter.key_retry_exhausted(
                state.attempts_made, state.total_wait_seconds, key_name, email, project_id
            )
            if state.policy_disabled:
                logger.warning(
                    "Policy {} remains disabled on organization {}", self.policy, state.organization_id
                )
                self.emitter.policy_restore_manual(self.policy)
            return state, KeyCreationOutcome()

        state.key_created = True
        logger.info("Key created after {} attempt(s)", state.attempts_made)
        self._offer_restore(state)
        return state, outcome

    def resolve_organization_id(self, request: ProvisioningRequest, project_id: str) -> str:
        """Organization id from the request, the project ancestry, or the operator."""
        if request.organization_id:
            return request.organization_id

        logger.info("Looking up the organization of project {}...", project_id)
        try:
            ancestors = self.control_plane.get_project_ancestors(project_id)
        except PROVIDER_ERRORS as e:
            logger.warning("Could not read project ancestry: {}", failure_output(e))
            ancestors = []

        for ancestor in ancestors:
            if ancestor.get("type") == "organization" and ancestor.get("id"):
                org_id = str(ancestor["id"])
                logger.info("Found organization: {}", org_id)
                return org_id

        return self.operator.ask("Enter your Organization ID (numeric)").strip()

    def _grant_policy_admin(self, state: OrgPolicyRecoveryState, admin: str) -> None:
        role = self.config.policy_admin_role
        logger.info("Granting {} to {}...", role, admin)
        try:
            self.control_plane.grant_org_role(state.organization_id, f"user:{admin}", role)
            state.role_granted = True
        except PROVIDER_ERRORS as e:
            logger.warning("Could not grant {} (you may already have it): {}", role, failure_output(e))

        delay = self.config.timings.iam_propagation_seconds
        logger.info("Waiting {}s for IAM propagation...", delay)
        self.sleep(delay)

    def _disable_policy(self, state: OrgPolicyRecoveryState) -> None:
        org_id = state.organization_id
        logger.info("Disabling {} on organization {}...", self.policy, org_id)
        try:
            self.control_plane.reset_org_policy(org_id, self.policy)
            state.policy_disabled = True
            return
        except PROVIDER_ERRORS as e:
            logger.warning("org-policies reset failed, trying legacy command: {}", failure_output(e))

        try:
            self.control_plane.set_legacy_org_policy_enforcement(org_id, self.policy, False)
            state.policy_disabled = True
            return
        except PROVIDER_ERRORS as e:
            logger.warning("Legacy disable-enforce failed: {}", failure_output(e))

        # Both commands failed: the operator switches it off by hand
        self.emitter.policy_manual(self.policy)
        self.operator.pause("Press Enter after disabling the policy in the console...")
        state.policy_disabled = True

    def _retry_key_creation(
        self, state: OrgPolicyRecoveryState, attempt: KeyAttempt
    ) -> KeyCreationOutcome:
        """One attempt after each wait of the schedule, stopping on the first success."""
        waits = list(self.config.timings.key_retry_waits)

        def wait_before_attempt(retry_state: RetryCallState) -> None:
            number = retry_state.attempt_number
            delay = waits[number - 1]
            logger.info(
                "Waiting {}s for policy propagation (attempt {}/{})...", delay, number, len(waits)
            )
            self.sleep(delay)
            state.total_wait_seconds += delay
            state.attempts_made = number

        retrying = Retrying(
            stop=stop_after_attempt(len(waits)),
            wait=wait_none(),
            retry=retry_if_result(lambda outcome: not outcome.created),
            before=wait_before_attempt,
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )
        outcome: KeyCreationOutcome = retrying(attempt)
        return outcome

    def _offer_restore(self, state: OrgPolicyRecoveryState) -> None:
        org_id = state.organization_id
        if not self.operator.confirm(
            f"Re-enable the {self.policy} policy now (recommended for security)?", default=True
        ):
            logger.warning("Policy {} remains disabled on organization {}", self.policy, org_id)
            self.emitter.policy_restore_manual(self.policy)
            return

        try:
            self.control_plane.set_org_policy_enforcement(org_id, self.policy, True)
            state.policy_restored = True
        except PROVIDER_ERRORS as e:
            logger.warning("org-policies set-policy failed, trying legacy command: {}", failure_output(e))
            try:
                self.control_plane.set_legacy_org_policy_enforcement(org_id, self.policy, True)
                state.policy_restored = True
            except PROVIDER_ERRORS as e2:
                logger.warning("Could not re-enable the policy: {}", failure_output(e2))

        if state.policy_restored:
            logger.info("Policy {} re-enabled", self.policy)
        else:
            self.emitter.policy_restore_manual(self.policy)
