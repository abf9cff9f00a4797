"""Google REST API calls that gcloud does not cover.

The IAM service account PUT (the only working way to set ``oauth2ClientId``)
and the IAP brands endpoint are called through googleapiclient with the
operator's gcloud access token.
"""

from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import Resource, build
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from migsetup.errors import classify_error
from migsetup.logging import logger


def _is_retryable_error(exc: BaseException) -> bool:
    """Retry only transient failures (429, 5xx, network)."""
    category = classify_error(exc)
    if category.retryable:
        logger.warning("{}: {} (will retry)", category.name, exc)
    return category.retryable


# Retry decorator for REST calls: 5 attempts, exponential backoff 2-30s with jitter
api_retry = retry(
    retry=retry_if_exception(_is_retryable_error),
    stop=stop_after_attempt(5),
    wait=wait_exponential_jitter(initial=2, max=30, jitter=2),
    reraise=True,
)


def get_service(name: str, version: str, token: str) -> Resource:
    """Build an API client authorized with a bearer token."""
    credentials = Credentials(token=token)
    return build(name, version, credentials=credentials, cache_discovery=False)


def service_account_resource_name(email: str) -> str:
    """Full resource name; ``-`` lets IAM infer the project from the email."""
    return f"projects/-/serviceAccounts/{email}"


@api_retry
def update_service_account(email: str, token: str, body: dict[str, Any]) -> dict[str, Any]:
    """Replace a service account resource (HTTP PUT).

    Args:
        email: Service account email
        token: OAuth2 access token
        body: Full resource fields, e.g. displayName, description, oauth2ClientId

    Returns:
        The service account resource as returned by IAM.
    """
    service = get_service("iam", "v1", token)
    name = service_account_resource_name(email)
    logger.debug("PUT {} fields={}", name, sorted(body))
    result: dict[str, Any] = (
        service.projects().serviceAccounts().update(name=name, body=body).execute()
    )
    return result


@api_retry
def create_brand(project_number: str, token: str, title: str, support_email: str) -> dict[str, Any]:
    """Create the OAuth consent screen (IAP brand) of a project.

    The brands endpoint expects the project NUMBER as parent.
    """
    service = get_service("iap", "v1", token)
    parent = f"projects/{project_number}"
    body = {"applicationTitle": title, "supportEmail": support_email}
    logger.debug("POST {}/brands", parent)
    result: dict[str, Any] = service.projects().brands().create(parent=parent, body=body).execute()
    return result
