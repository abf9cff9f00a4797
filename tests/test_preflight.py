"""Tests for migsetup.preflight."""

import io
from unittest.mock import patch

import pytest

from migsetup.errors import AuthenticationError
from migsetup.instructions import InstructionEmitter
from migsetup.preflight import (
    check_authentication,
    check_prerequisites,
    check_terms_of_service,
    is_cloud_shell,
    tos_blocked,
)

from .conftest import FakeControlPlane, ScriptedOperator, gcloud_error

TOS_STDERR = (
    "ERROR: (gcloud.projects.list) You must first accept the Terms of Service "
    "at https://console.cloud.google.com"
)


class AcceptingOperator(ScriptedOperator):
    """Operator who accepts the Terms of Service during the pause."""

    def __init__(self, control_plane: FakeControlPlane) -> None:
        super().__init__()
        self.control_plane = control_plane

    def pause(self, message: str) -> None:
        super().pause(message)
        self.control_plane.errors.pop("list_projects", None)


class TestCloudShell:
    """Tests for Cloud Shell detection."""

    @pytest.mark.parametrize(
        ("env", "expected"),
        [
            ({"CLOUD_SHELL": "true"}, True),
            ({"DEVSHELL_PROJECT_ID": "p-1"}, True),
            ({"CLOUD_SHELL": "false"}, False),
            ({}, False),
        ],
    )
    def test_detection(self, env: dict[str, str], expected: bool) -> None:
        """Either environment marker means Cloud Shell."""
        assert is_cloud_shell(env) is expected


class TestAuthentication:
    """Tests for the authentication check."""

    def test_active_account(self, fake_cp: FakeControlPlane) -> None:
        """The active account is returned."""
        assert check_authentication(fake_cp) == "admin@example.com"

    def test_no_account_raises(self, fake_cp: FakeControlPlane) -> None:
        """No account means not authenticated."""
        fake_cp.account = ""
        with pytest.raises(AuthenticationError, match="gcloud auth login"):
            check_authentication(fake_cp)


class TestTermsOfService:
    """Tests for the Terms of Service check."""

    def test_markers(self) -> None:
        """ToS messages are recognised, others are not."""
        assert tos_blocked(TOS_STDERR) is True
        assert tos_blocked("You must agree to the terms") is True
        assert tos_blocked("ERROR: PERMISSION_DENIED") is False

    def test_accepted_already(
        self, fake_cp: FakeControlPlane, operator: ScriptedOperator, emitter: InstructionEmitter
    ) -> None:
        """No pause when projects can be listed."""
        assert check_terms_of_service(fake_cp, operator, emitter, cloud_shell=False) is True
        assert operator.pauses == []

    def test_accepted_after_pause(
        self, fake_cp: FakeControlPlane, emitter: InstructionEmitter, output: io.StringIO
    ) -> None:
        """The operator accepts, the recheck passes."""
        fake_cp.errors["list_projects"] = gcloud_error(TOS_STDERR)
        operator = AcceptingOperator(fake_cp)

        assert check_terms_of_service(fake_cp, operator, emitter, cloud_shell=True) is True
        assert len(operator.pauses) == 1
        assert "Accept GCP Terms of Service" in output.getvalue()
        assert len(fake_cp.called("list_projects")) == 2

    def test_still_blocked(
        self, fake_cp: FakeControlPlane, operator: ScriptedOperator, emitter: InstructionEmitter
    ) -> None:
        """Still blocked after the pause fails the check."""
        fake_cp.errors["list_projects"] = gcloud_error(TOS_STDERR)

        assert check_terms_of_service(fake_cp, operator, emitter, cloud_shell=False) is False

    def test_other_listing_error_ignored(
        self, fake_cp: FakeControlPlane, operator: ScriptedOperator, emitter: InstructionEmitter
    ) -> None:
        """Non-ToS listing errors do not block."""
        fake_cp.errors["list_projects"] = gcloud_error("ERROR: PERMISSION_DENIED")

        assert check_terms_of_service(fake_cp, operator, emitter, cloud_shell=False) is True
        assert operator.pauses == []


class TestCheckPrerequisites:
    """Tests for the combined check."""

    def test_all_good(
        self, fake_cp: FakeControlPlane, operator: ScriptedOperator, emitter: InstructionEmitter
    ) -> None:
        """Installed, authenticated and ToS accepted."""
        with patch("migsetup.preflight.check_gcloud_installed", return_value=True):
            assert check_prerequisites(fake_cp, operator, emitter) is True

    def test_gcloud_missing(
        self, fake_cp: FakeControlPlane, operator: ScriptedOperator, emitter: InstructionEmitter
    ) -> None:
        """Missing gcloud stops before any call."""
        with patch("migsetup.preflight.check_gcloud_installed", return_value=False):
            assert check_prerequisites(fake_cp, operator, emitter) is False
        assert fake_cp.calls == []

    def test_not_authenticated(
        self, fake_cp: FakeControlPlane, operator: ScriptedOperator, emitter: InstructionEmitter
    ) -> None:
        """No account fails the check."""
        fake_cp.account = ""
        with patch("migsetup.preflight.check_gcloud_installed", return_value=True):
            assert check_prerequisites(fake_cp, operator, emitter) is False
        assert fake_cp.called("list_projects") == []
