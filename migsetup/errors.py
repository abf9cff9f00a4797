"""Failure categories and error classification.

Classification prefers structured information (HTTP status and the error
``status``/``reason`` fields of a Google API error body). gcloud only reports
human-readable text on stderr, so for those failures keyword heuristics are
the fallback. The classifier is a plain callable so callers can swap it.
"""

import json
from collections.abc import Callable
from enum import Enum, auto

from googleapiclient.errors import HttpError

from migsetup.config import KEY_CREATION_POLICY


class FailureCategory(Enum):
    """Coarse category of a control-plane failure."""

    QUOTA_EXCEEDED = auto()  # project creation quota
    ALREADY_EXISTS = auto()  # resource exists, usually safe to adopt
    BILLING_REQUIRED = auto()  # API needs a linked billing account
    PERMISSION_DENIED = auto()  # missing IAM permission
    NOT_FOUND = auto()  # unknown or invalid resource/API name
    POLICY_BLOCKED = auto()  # organization policy constraint refused the call
    UNAUTHENTICATED = auto()  # missing or expired credentials
    RATE_LIMITED = auto()  # 429 - retry with backoff
    SERVER_ERROR = auto()  # 5xx - retry with backoff
    NETWORK_ERROR = auto()  # connection errors - retry with backoff
    OTHER = auto()

    @property
    def retryable(self) -> bool:
        """True for transient failures worth an automatic retry."""
        return self in (
            FailureCategory.RATE_LIMITED,
            FailureCategory.SERVER_ERROR,
            FailureCategory.NETWORK_ERROR,
        )


class ControlPlaneError(Exception):
    """Raised when a control-plane operation fails.

    Attributes:
        output: Raw provider output (stderr or response body) used for classification.
    """

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output or message


class GcloudError(ControlPlaneError):
    """Raised when a gcloud command fails."""

    pass


class AuthenticationError(Exception):
    """Raised when authentication is missing or invalid."""

    pass


# Exceptions a control-plane call may raise for a provider-side failure
PROVIDER_ERRORS = (ControlPlaneError, HttpError)


Classifier = Callable[[BaseException], FailureCategory]

# Ordered: the first matching rule wins. Policy and billing messages often
# also mention permissions or "not found", so they are checked first.
_TEXT_RULES: list[tuple[FailureCategory, tuple[str, ...]]] = [
    (
        FailureCategory.POLICY_BLOCKED,
        (KEY_CREATION_POLICY.lower(), "organization policy", "constraints/"),
    ),
    (FailureCategory.BILLING_REQUIRED, ("billing",)),
    (FailureCategory.QUOTA_EXCEEDED, ("quota",)),
    (FailureCategory.ALREADY_EXISTS, ("already exists", "already_exists")),
    (FailureCategory.PERMISSION_DENIED, ("permission_denied", "permission")),
    (
        FailureCategory.UNAUTHENTICATED,
        ("unauthenticated", "gcloud auth login", "reauthentication"),
    ),
    (FailureCategory.NOT_FOUND, ("not found", "not_found", "invalid")),
]


def classify_text(text: str) -> FailureCategory:
    """Best-effort category from unstructured provider output."""
    lowered = text.lower()
    for category, keywords in _TEXT_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return FailureCategory.OTHER


def _http_error_details(exc: HttpError) -> tuple[str, str]:
    """Extract (status, message) from a Google API error body."""
    try:
        content = json.loads(exc.content.decode("utf-8"))
    except (json.JSONDecodeError, AttributeError, UnicodeDecodeError):
        return "", ""
    error = content.get("error", {}) if isinstance(content, dict) else {}
    if not isinstance(error, dict):
        return "", str(error)
    return str(error.get("status", "")), str(error.get("message", ""))


def http_error_text(exc: HttpError) -> str:
    """Raw response body of an HttpError as text."""
    try:
        return exc.content.decode("utf-8")
    except (AttributeError, UnicodeDecodeError):
        return str(exc)


def classify_error(exc: BaseException) -> FailureCategory:
    """Classify an exception into a FailureCategory.

    Args:
        exc: The exception to classify

    Returns:
        The best matching category, OTHER when nothing matches.
    """
    if isinstance(exc, HttpError):
        status_code = exc.resp.status
        status, message = _http_error_details(exc)

        if status_code == 409 or status == "ALREADY_EXISTS":
            return FailureCategory.ALREADY_EXISTS
        if status_code == 429:
            return FailureCategory.RATE_LIMITED
        if status_code >= 500:
            return FailureCategory.SERVER_ERROR
        if status_code == 401 or status == "UNAUTHENTICATED":
            return FailureCategory.UNAUTHENTICATED

        # The body text distinguishes these refusals from plain 403s and 400s
        by_text = classify_text(message)
        if by_text in (
            FailureCategory.POLICY_BLOCKED,
            FailureCategory.BILLING_REQUIRED,
            FailureCategory.ALREADY_EXISTS,
        ):
            return by_text
        if status_code == 403 or status == "PERMISSION_DENIED":
            return FailureCategory.PERMISSION_DENIED
        if status_code in (400, 404) or status in ("NOT_FOUND", "INVALID_ARGUMENT"):
            return FailureCategory.NOT_FOUND
        return by_text

    if isinstance(exc, ControlPlaneError):
        return classify_text(exc.output)

    # Network/connection errors
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return FailureCategory.NETWORK_ERROR

    return FailureCategory.OTHER


def failure_output(exc: BaseException) -> str:
    """Raw provider message to surface to the operator."""
    if isinstance(exc, HttpError):
        return http_error_text(exc)
    if isinstance(exc, ControlPlaneError):
        return exc.output
    return str(exc)
