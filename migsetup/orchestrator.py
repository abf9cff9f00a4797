"""Provisioning step sequencer.

Runs the fixed setup sequence against a ``ControlPlane``. Each step takes the
current ``RunContext`` and returns a tagged ``StepResult``; the sequencer
records every result, keeps going on SUCCESS and DEGRADED and stops on FATAL.
"""

import re
import time
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path

from migsetup.artifacts import key_filename, persist_key, temp_key_path, write_reference_file
from migsetup.config import IAP_API, ProvisioningRequest, SetupConfig
from migsetup.control_plane import ControlPlane
from migsetup.errors import PROVIDER_ERRORS, Classifier, FailureCategory, classify_error, failure_output
from migsetup.instructions import InstructionEmitter
from migsetup.logging import logger
from migsetup.models import (
    CapabilityResult,
    DelegationState,
    KeyCreationOutcome,
    KeyStatus,
    ProjectHandle,
    RunContext,
    ServiceAccountHandle,
    StepResult,
    StepStatus,
)
from migsetup.prompts import Operator
from migsetup.recovery import KeyPolicyRecovery

STEP_CREATE_PROJECT = "Create project"
STEP_ACTIVATE_PROJECT = "Activate project"
STEP_LINK_BILLING = "Link billing"
STEP_ENABLE_APIS = "Enable APIs"
STEP_SERVICE_ACCOUNT = "Service account"
STEP_DELEGATION = "Domain-wide delegation"
STEP_BRAND = "OAuth consent screen"
STEP_KEY = "Service account key"
STEP_ARTIFACTS = "DWD instructions"

Step = Callable[[RunContext], StepResult]


def generate_project_id(project_name: str, now: float) -> str:
    """Project id: slug of the project name plus the last 6 digits of the epoch."""
    slug = re.sub(r"[^a-z0-9]+", "-", project_name.lower()).strip("-")
    return f"{slug}-{str(int(now))[-6:]}"


def service_account_email(account_name: str, project_id: str) -> str:
    return f"{account_name}@{project_id}.iam.gserviceaccount.com"


def capability_gate(results: list[CapabilityResult]) -> bool:
    """True when every capability failed, the run then needs the operator's go-ahead."""
    return bool(results) and not any(r.succeeded for r in results)


class Orchestrator:
    """Drives one provisioning run.

    Args:
        control_plane: Provider operations
        operator: Answers confirmations and questions
        config: Names, roles and timings (defaults when None)
        emitter: Prints instructions and the summary
        classifier: Maps exceptions to a FailureCategory
        sleep: Used for every propagation delay
        clock: Epoch seconds, used for the project id
        log_file: Persistent run log, shown in the summary
        cloud_shell: Offer to download the key to the operator's machine
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        operator: Operator,
        config: SetupConfig | None = None,
        emitter: InstructionEmitter | None = None,
        classifier: Classifier = classify_error,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        log_file: Path | None = None,
        cloud_shell: bool = False,
    ) -> None:
        self.control_plane = control_plane
        self.operator = operator
        self.config = config or SetupConfig()
        self.emitter = emitter or InstructionEmitter()
        self.classifier = classifier
        self.sleep = sleep
        self.clock = clock
        self.log_file = log_file
        self.cloud_shell = cloud_shell
        self.recovery = KeyPolicyRecovery(
            control_plane, operator, self.config, self.emitter, sleep=sleep
        )

    def steps(self, request: ProvisioningRequest) -> list[tuple[str, Step]]:
        """Ordered steps for a request. Billing is linked only when an account was given."""
        steps: list[tuple[str, Step]] = [
            (STEP_CREATE_PROJECT, self.create_project),
            (STEP_ACTIVATE_PROJECT, self.activate_project),
        ]
        if request.billing_account_id:
            steps.append((STEP_LINK_BILLING, self.link_billing))
        steps += [
            (STEP_ENABLE_APIS, self.enable_apis),
            (STEP_SERVICE_ACCOUNT, self.create_service_account),
            (STEP_DELEGATION, self.enable_delegation),
            (STEP_BRAND, self.configure_brand),
            (STEP_KEY, self.create_key),
            (STEP_ARTIFACTS, self.emit_artifacts),
        ]
        return steps

    def run(self, request: ProvisioningRequest) -> RunContext:
        """Run every step, stopping at the first FATAL."""
        ctx = RunContext(request=request)
        for name, step in self.steps(request):
            self.emitter.header(name)
            result = step(ctx)
            ctx = result.context.record(name, result.status, result.detail, result.fallback)
            logger.debug("Step '{}' finished: {} {}", name, result.status.value, result.detail)

            if result.status == StepStatus.FATAL:
                logger.error("{} failed: {}", name, result.detail)
                self.emitter.fatal(name, result.detail)
                if ctx.project:
                    self.emitter.teardown(ctx.project_id)
                return ctx

        self.emitter.header("Setup Complete")
        self.emitter.summary(ctx, self.log_file)
        self.emitter.teardown(ctx.project_id)
        return ctx

    def _access_token(self) -> str:
        """Fresh access token, empty when gcloud could not produce a usable one."""
        try:
            token = self.control_plane.get_access_token().strip()
        except PROVIDER_ERRORS as e:
            logger.error("Could not get an access token: {}", failure_output(e))
            return ""
        if not token or "ERROR" in token:
            return ""
        return token

    # --- steps ---

    def create_project(self, ctx: RunContext) -> StepResult:
        project_id = generate_project_id(self.config.project_name, self.clock())
        logger.info("Creating project {}...", project_id)
        try:
            self.control_plane.create_project(
                project_id, self.config.project_name, ctx.request.organization_id
            )
        except PROVIDER_ERRORS as e:
            output = failure_output(e)
            self.emitter.project_create_failed(self.classifier(e), output)
            existing = self.operator.ask(
                "Enter an existing project ID to use (or press Enter to abort)"
            ).strip()
            if not existing:
                return StepResult.fatal(ctx, f"Project creation failed: {output}")
            logger.info("Using existing project: {}", existing)
            ctx = replace(ctx, project=ProjectHandle(existing, adopted=True))
            return StepResult.success(ctx, f"adopted {existing}", fallback=True)

        logger.info("Project created: {}", project_id)
        return StepResult.success(replace(ctx, project=ProjectHandle(project_id)), project_id)

    def activate_project(self, ctx: RunContext) -> StepResult:
        project_id = ctx.project_id
        try:
            self.control_plane.set_active_project(project_id)
            info = self.control_plane.describe_project(project_id)
        except PROVIDER_ERRORS as e:
            return StepResult.fatal(ctx, f"Could not verify project {project_id}: {failure_output(e)}")

        number = info.get("projectNumber")
        if number and ctx.project:
            ctx = replace(ctx, project=replace(ctx.project, project_number=str(number)))
        logger.info("Active project: {}", project_id)
        return StepResult.success(ctx, project_id)

    def link_billing(self, ctx: RunContext) -> StepResult:
        billing = ctx.request.billing_account_id or ""
        try:
            self.control_plane.link_billing(ctx.project_id, billing)
        except PROVIDER_ERRORS as e:
            logger.warning("Could not link billing account {}: {}", billing, failure_output(e))
            self.emitter.billing_link_failed(ctx.project_id, billing)
            return StepResult.degraded(ctx, f"link billing account {billing} manually")
        logger.info("Billing account {} linked", billing)
        return StepResult.success(ctx, billing)

    def enable_apis(self, ctx: RunContext) -> StepResult:
        project_id = ctx.project_id
        self._ensure_active_project(project_id)

        results: list[CapabilityResult] = []
        for name in self.config.required_apis:
            logger.info("Enabling {}...", name)
            try:
                self.control_plane.enable_service(project_id, name)
            except PROVIDER_ERRORS as e:
                result = CapabilityResult(name, False, self.classifier(e), failure_output(e))
                self.emitter.capability_failed(result)
                results.append(result)
                continue
            results.append(CapabilityResult(name, True))

        failed = [r for r in results if not r.succeeded]
        billing_needed = any(r.category == FailureCategory.BILLING_REQUIRED for r in failed)
        ctx = replace(ctx, capabilities=tuple(results), billing_needed=billing_needed)

        if not failed:
            return StepResult.success(ctx, f"{len(results)} APIs enabled")

        logger.warning("{} of {} APIs failed to enable", len(failed), len(results))
        if billing_needed:
            self.emitter.billing_required(project_id)
        self.emitter.enable_commands(project_id, failed)

        if capability_gate(results):
            self.emitter.all_capabilities_failed(project_id)
            if not self.operator.confirm("Continue anyway?", default=False):
                return StepResult.fatal(ctx, "All APIs failed to enable. Setup aborted.")
            return StepResult.degraded(ctx, "no API could be enabled")

        names = ", ".join(r.name for r in failed)
        return StepResult.degraded(ctx, f"{len(failed)}/{len(results)} failed: {names}")

    def _ensure_active_project(self, project_id: str) -> None:
        """Re-assert the active project if something switched it."""
        try:
            active = self.control_plane.get_active_project()
        except PROVIDER_ERRORS as e:
            logger.warning("Could not read the active project: {}", failure_output(e))
            active = ""
        if active == project_id:
            return
        logger.warning("Active project is '{}', switching back to {}", active, project_id)
        try:
            self.control_plane.set_active_project(project_id)
        except PROVIDER_ERRORS as e:
            logger.warning("Could not set the active project: {}", failure_output(e))

    def create_service_account(self, ctx: RunContext) -> StepResult:
        project_id = ctx.project_id
        name = self.config.service_account_name
        email = service_account_email(name, project_id)
        created = True
        create_failure = ""

        try:
            self.control_plane.create_service_account(
                project_id,
                name,
                self.config.display_name,
                self.config.describe_service_account(ctx.request.domain),
            )
            logger.info("Service account created: {}", email)
        except PROVIDER_ERRORS as e:
            created = False
            if self.classifier(e) == FailureCategory.ALREADY_EXISTS:
                logger.info("Service account already exists, reusing {}", email)
            else:
                create_failure = failure_output(e)
                logger.warning(
                    "Service account creation failed, continuing with {}: {}", email, create_failure
                )
        ctx = replace(ctx, service_account=ServiceAccountHandle(email, created=created))

        role = self.config.service_account_role
        try:
            self.control_plane.bind_project_role(project_id, f"serviceAccount:{email}", role)
        except PROVIDER_ERRORS as e:
            logger.warning("Could not grant {} to {}: {}", role, email, failure_output(e))
            self.emitter.role_bind_failed(email, role)
            return StepResult.degraded(ctx, f"grant {role} manually")

        logger.info("Granted {} to {}", role, email)
        if create_failure:
            return StepResult.degraded(ctx, f"creation failed, verify {email} exists: {create_failure}")
        return StepResult.success(ctx, email, fallback=not created)

    def enable_delegation(self, ctx: RunContext) -> StepResult:
        account = ctx.service_account
        if account is None:
            return StepResult.fatal(ctx, "No service account available")

        try:
            info = self.control_plane.describe_service_account(ctx.project_id, account.email)
        except PROVIDER_ERRORS as e:
            return StepResult.fatal(
                ctx, f"Could not describe {account.email}: {failure_output(e)}"
            )
        unique_id = str(info.get("uniqueId") or "")
        if not unique_id:
            return StepResult.fatal(ctx, f"Could not retrieve the unique ID of {account.email}")

        account = account.with_unique_id(unique_id)
        ctx = replace(ctx, service_account=account)
        logger.info("Service account unique ID: {}", unique_id)

        token = self._access_token()
        if not token:
            return StepResult.fatal(ctx, "Failed to get a valid access token. Run: gcloud auth login")

        # PUT replaces the whole resource, so the descriptive fields are resent
        body = {
            "displayName": self.config.display_name,
            "description": self.config.describe_service_account(ctx.request.domain),
            "oauth2ClientId": unique_id,
        }
        try:
            response = self.control_plane.replace_service_account(account.email, token, body)
        except PROVIDER_ERRORS as e:
            logger.warning("Could not enable DWD via the API: {}", failure_output(e))
            response = {}

        if response.get("oauth2ClientId"):
            logger.info("Domain-wide delegation enabled")
            ctx = replace(ctx, delegation=DelegationState(enabled_on_provider=True))
            return StepResult.success(ctx, f"client ID {unique_id}")

        logger.warning("DWD could not be confirmed on the service account")
        self.emitter.delegation_manual(account.email, unique_id)
        return StepResult.degraded(ctx, "enable DWD in the GCP Console")

    def configure_brand(self, ctx: RunContext) -> StepResult:
        token = self._access_token()
        if not token:
            return StepResult.fatal(ctx, "Failed to get a valid access token. Run: gcloud auth login")

        project_id = ctx.project_id
        project_number = self._resolve_project_number(ctx)
        if project_number != project_id and ctx.project:
            ctx = replace(ctx, project=replace(ctx.project, project_number=project_number))

        self._ensure_iap(project_id)

        title = self.config.display_name
        support_email = ctx.request.admin_identity
        try:
            self.control_plane.create_brand(project_number, token, title, support_email)
            logger.info("OAuth consent screen configured")
        except PROVIDER_ERRORS as e:
            if self.classifier(e) != FailureCategory.ALREADY_EXISTS:
                logger.warning("Could not configure the OAuth consent screen: {}", failure_output(e))
                self.emitter.brand_manual(project_id, title, support_email)
                return StepResult.degraded(ctx, "configure the consent screen manually")
            logger.info("OAuth consent screen already configured")

        return StepResult.success(replace(ctx, brand_configured=True), title)

    def _resolve_project_number(self, ctx: RunContext) -> str:
        """Project number, falling back to the project id."""
        if ctx.project and ctx.project.project_number:
            return ctx.project.project_number
        try:
            number = str(self.control_plane.describe_project(ctx.project_id).get("projectNumber") or "")
        except PROVIDER_ERRORS as e:
            logger.debug("describe_project failed: {}", failure_output(e))
            number = ""
        if not number:
            logger.warning("Could not get the project number, using the project ID")
            return ctx.project_id
        return number

    def _ensure_iap(self, project_id: str) -> None:
        """Enable the IAP API on demand; the brand endpoint lives there."""
        try:
            if self.control_plane.is_service_enabled(project_id, IAP_API):
                return
        except PROVIDER_ERRORS as e:
            logger.debug("Could not check {}: {}", IAP_API, failure_output(e))

        logger.info("Enabling {}...", IAP_API)
        try:
            self.control_plane.enable_service(project_id, IAP_API)
        except PROVIDER_ERRORS as e:
            logger.warning("Could not enable {}: {}", IAP_API, failure_output(e))
            return
        self.sleep(self.config.timings.iap_propagation_seconds)

    def _attempt_key(self, project_id: str, email: str, final_path: Path) -> KeyCreationOutcome:
        """One key creation attempt, moved into place on success."""
        temp_path = temp_key_path(project_id)
        try:
            self.control_plane.create_service_account_key(project_id, email, temp_path)
        except PROVIDER_ERRORS as e:
            category = self.classifier(e)
            logger.warning("Key creation failed: {}", failure_output(e))
            if category == FailureCategory.POLICY_BLOCKED:
                return KeyCreationOutcome(KeyStatus.BLOCKED_BY_POLICY)
            return KeyCreationOutcome(KeyStatus.FAILED_OTHER)

        try:
            path = persist_key(temp_path, final_path)
        except OSError as e:
            logger.error("Key written to {} but could not be moved to {}: {}", temp_path, final_path, e)
            return KeyCreationOutcome(KeyStatus.FAILED_OTHER)
        logger.info("Key saved: {}", path)
        return KeyCreationOutcome(KeyStatus.CREATED, path)

    def _offer_download(self, outcome: KeyCreationOutcome) -> None:
        """In Cloud Shell, offer to send the saved key to the operator's machine."""
        if not self.cloud_shell or outcome.path is None:
            return
        if not self.operator.confirm("Download the key file to your local machine?", default=False):
            return
        try:
            tool = self.control_plane.download_to_local(outcome.path)
        except PROVIDER_ERRORS as e:
            logger.warning("Automatic download failed: {}", failure_output(e))
            self.emitter.key_download_manual(outcome.path)
            return
        logger.info("Download of {} started with {}", outcome.path, tool)
        self.emitter.key_download_started()

    def create_key(self, ctx: RunContext) -> StepResult:
        account = ctx.service_account
        if account is None:
            return StepResult.fatal(ctx, "No service account available")

        project_id = ctx.project_id
        key_name = key_filename(ctx.request.domain)
        final_path = ctx.request.output_directory / key_name

        outcome = self._attempt_key(project_id, account.email, final_path)
        if outcome.created:
            self._offer_download(outcome)
            return StepResult.success(replace(ctx, key=outcome), str(outcome.path))

        if outcome.status == KeyStatus.BLOCKED_BY_POLICY:
            _, outcome = self.recovery.run(
                ctx.request,
                project_id,
                account.email,
                key_name,
                lambda: self._attempt_key(project_id, account.email, final_path),
            )
            ctx = replace(ctx, key=outcome)
            if outcome.created:
                self._offer_download(outcome)
                return StepResult.success(ctx, str(outcome.path), fallback=True)
            return StepResult.degraded(ctx, f"blocked by {self.config.key_policy}")

        self.emitter.key_manual_command(key_name, account.email, project_id)
        return StepResult.degraded(replace(ctx, key=outcome), "create the key manually")

    def emit_artifacts(self, ctx: RunContext) -> StepResult:
        request = ctx.request
        account = ctx.service_account
        client_id = account.unique_id if account else None
        if not client_id:
            return StepResult.degraded(ctx, "no client ID, DWD reference not written")

        reference_path: Path | None = None
        try:
            reference_path = write_reference_file(request.output_directory, request.domain, client_id)
            logger.info("DWD reference saved to {}", reference_path)
        except OSError as e:
            logger.error("Could not write the DWD reference file: {}", e)

        self.emitter.delegation_link(client_id)
        self.emitter.header("Chat API App Configuration")
        self.emitter.chat_app(self.config, ctx.project_id, request)
        self.emitter.header("Drive SDK")
        self.emitter.drive_sdk()

        ctx = replace(ctx, reference_path=reference_path)
        if reference_path is None:
            return StepResult.degraded(ctx, "reference file not written")
        return StepResult.success(ctx, str(reference_path))
