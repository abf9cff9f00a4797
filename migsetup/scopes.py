"""OAuth scopes for domain-wide delegation and the Admin Console link."""

# Standard migration scopes (includes People API profile scopes for Contacts)
STANDARD_SCOPES = [
    "https://www.googleapis.com/auth/admin.directory.resource.calendar",
    "https://www.googleapis.com/auth/gmail.settings.sharing",
    "https://mail.google.com/",
    "https://sites.google.com/feeds/",
    "https://www.googleapis.com/auth/admin.directory.group",
    "https://www.googleapis.com/auth/admin.directory.user",
    "https://www.googleapis.com/auth/apps.groups.migration",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/drive.appdata",
    "https://www.googleapis.com/auth/email.migration",
    "https://www.googleapis.com/auth/tasks",
    "https://www.googleapis.com/auth/forms",
    "https://www.googleapis.com/auth/gmail.settings.basic",
    "https://www.googleapis.com/auth/contacts",
    "https://www.googleapis.com/auth/contacts.other.readonly",
    "https://www.googleapis.com/auth/contacts.readonly",
    "https://www.googleapis.com/auth/directory.readonly",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/user.addresses.read",
    "https://www.googleapis.com/auth/user.birthday.read",
    "https://www.googleapis.com/auth/user.emails.read",
    "https://www.googleapis.com/auth/user.gender.read",
    "https://www.googleapis.com/auth/user.organization.read",
    "https://www.googleapis.com/auth/user.phonenumbers.read",
]

CHAT_SCOPES = [
    "https://www.googleapis.com/auth/chat.admin.spaces.readonly",
    "https://www.googleapis.com/auth/chat.admin.spaces",
    "https://www.googleapis.com/auth/chat.admin.memberships",
    "https://www.googleapis.com/auth/chat.bot",
    "https://www.googleapis.com/auth/chat.spaces",
    "https://www.googleapis.com/auth/chat.memberships",
    "https://www.googleapis.com/auth/chat.memberships.app",
    "https://www.googleapis.com/auth/chat.messages",
    "https://www.googleapis.com/auth/chat.import",
    "https://www.googleapis.com/auth/chat.customemojis",
]

ADMIN_DWD_URL = "https://admin.google.com/ac/owl/domainwidedelegation"


def all_scopes() -> list[str]:
    """Standard scopes followed by Chat scopes, without duplicates."""
    return list(dict.fromkeys(STANDARD_SCOPES + CHAT_SCOPES))


def scopes_csv(scopes: list[str] | None = None) -> str:
    """Comma-separated scope list as pasted into the Admin Console."""
    return ",".join(all_scopes() if scopes is None else scopes)


def dwd_url(client_id: str, scopes: list[str] | None = None) -> str:
    """Admin Console DWD page with client id and scopes pre-filled.

    The Admin Console reads the parameters verbatim, so they are not encoded.
    """
    return (
        f"{ADMIN_DWD_URL}?clientScopeToAdd={scopes_csv(scopes)}"
        f"&clientIdToAdd={client_id}&overwriteClientId=true"
    )
