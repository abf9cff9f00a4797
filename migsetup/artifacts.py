"""Files produced by a run: the service account key and the DWD reference file."""

import re
import shutil
import tempfile
from pathlib import Path

from migsetup.logging import logger
from migsetup.scopes import CHAT_SCOPES, STANDARD_SCOPES, all_scopes, dwd_url, scopes_csv

KEY_SUFFIX = "-serviceaccount.json"
REFERENCE_PREFIX = "dwd-setup-"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_domain(domain: str) -> str:
    """Strip everything but letters, digits, dots, dashes and underscores."""
    return _UNSAFE_CHARS.sub("", domain)


def key_filename(domain: str) -> str:
    return f"{sanitize_domain(domain)}{KEY_SUFFIX}"


def reference_filename(domain: str) -> str:
    return f"{REFERENCE_PREFIX}{sanitize_domain(domain)}.txt"


def temp_key_path(project_id: str) -> Path:
    """Scratch location gcloud writes the new key to."""
    return Path(tempfile.gettempdir()) / f"sa-key-{project_id}.json"


def persist_key(temp_path: Path, final_path: Path) -> Path:
    """Move a freshly created key into place, readable by the owner only."""
    final_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(temp_path), str(final_path))
    final_path.chmod(0o600)
    logger.debug("Key moved to {} (mode 600)", final_path)
    return final_path


def render_reference(domain: str, client_id: str) -> str:
    """Text of the DWD reference file."""
    scopes = all_scopes()
    return f"""Domain-Wide Delegation Setup for {domain}
================================================

ONE-CLICK DWD LINK (open in browser, Client ID & scopes pre-populated):
{dwd_url(client_id)}

Just click Authorize on the page that opens.

--------------------------------------------------
Reference values (for manual setup if needed):

Client ID: {client_id}

OAuth Scopes ({len(scopes)} total: {len(STANDARD_SCOPES)} standard + {len(CHAT_SCOPES)} Chat, paste as one line in Admin Console):
{scopes_csv()}

Manual Steps:
1. Go to https://admin.google.com
2. Navigate to: Security > Access and data control > API controls
3. Click: Manage Domain Wide Delegation
4. Click: Add new
5. Paste the Client ID and OAuth Scopes above
6. Click: Authorize
"""


def write_reference_file(output_dir: Path, domain: str, client_id: str) -> Path:
    """Write the DWD reference file and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / reference_filename(domain)
    path.write_text(render_reference(domain, client_id), encoding="utf-8")
    return path
