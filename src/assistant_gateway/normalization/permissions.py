"""Permission-denial detection and remediation text for directory queries."""

import re
from dataclasses import dataclass
from typing import Tuple

DENIAL_SIGNATURES = (
    "Access is denied",
    "ErrorAccessDenied",
    "Authorization_RequestDenied",
    "Insufficient privileges",
)

ARGUMENT_ECHO_SIGNATURES = (
    "Response from tool microsoft_graph_query with args",
    '{"apiType":"graph"',
)


@dataclass(frozen=True)
class ResourcePermissions:
    resource: str
    markers: Tuple[str, ...]
    permissions: Tuple[str, ...]
    role_hint: str


# Checked in order; the first resource whose marker appears wins.
RESOURCE_PERMISSIONS = (
    ResourcePermissions(
        resource="user sign-in activity",
        markers=("auditLogs/signIns", "signIns", "AuditLog.Read.All"),
        permissions=("AuditLog.Read.All", "User.Read.All", "Directory.Read.All"),
        role_hint="Reports Reader",
    ),
    ResourcePermissions(
        resource="application registrations",
        markers=("/applications", "applications", "Application.Read.All"),
        permissions=("Application.Read.All", "Directory.Read.All"),
        role_hint="Application Administrator",
    ),
    ResourcePermissions(
        resource="mail",
        markers=("/messages", "/mail", "Mail.Read"),
        permissions=("Mail.Read", "Mail.ReadWrite"),
        role_hint="mailbox owner",
    ),
    ResourcePermissions(
        resource="calendars",
        markers=("/calendar", "/events", "Calendars.Read"),
        permissions=("Calendars.Read",),
        role_hint="calendar owner",
    ),
    ResourcePermissions(
        resource="files and sites",
        markers=("/drive", "/files", "/sites", "Files.Read", "Sites.Read"),
        permissions=("Files.Read.All", "Sites.Read.All"),
        role_hint="SharePoint Administrator",
    ),
)

GENERIC_PERMISSIONS = ResourcePermissions(
    resource="directory data",
    markers=(),
    permissions=("User.Read.All", "Directory.Read.All"),
    role_hint="Directory Readers",
)

FORBIDDEN_STATUS = re.compile(r'(?<![\w-])403(?![\w-])|statusCode"?\s*:\s*403|\bForbidden\b', re.IGNORECASE)

ALTERNATIVE_QUERIES = (
    "How many users do we have?",
    "List the first 5 users",
    "Show me user groups",
)


def is_permission_denial(text: str) -> bool:
    if any(signature in text for signature in DENIAL_SIGNATURES):
        return True
    compact = text.replace(" ", "")
    return 'statusCode":403' in compact and "graph.microsoft.com" in text


def mentions_forbidden(text: str) -> bool:
    """A 403 status or the word Forbidden, not a 403 buried in an id or number."""
    return FORBIDDEN_STATUS.search(text) is not None


def is_argument_echo(text: str) -> bool:
    if any(signature in text for signature in ARGUMENT_ECHO_SIGNATURES):
        return True
    return '"method":"get"' in text and '"endpoint"' in text


def resource_for(text: str) -> ResourcePermissions:
    for entry in RESOURCE_PERMISSIONS:
        if any(marker in text for marker in entry.markers):
            return entry
    return GENERIC_PERMISSIONS


def _resolution_steps(entry: ResourcePermissions, auth_mode: str) -> str:
    listed = "\n".join(f"   - {permission}" for permission in entry.permissions)
    if auth_mode == "client-credentials":
        return (
            "1. **Grant application permissions**: have an administrator grant these "
            f"**Application permissions** to the app registration and grant admin consent:\n{listed}\n\n"
            "2. **Switch to interactive sign-in**: sign in with a user account that holds "
            f"the {entry.role_hint} role or higher."
        )
    return (
        "1. **Consent to delegated permissions**: sign in again and consent to these "
        f"**Delegated permissions**, or ask an administrator to grant consent:\n{listed}\n\n"
        f"2. **Use a different account**: sign in with an account that holds the {entry.role_hint} role or higher."
    )


def remediation_text(error_text: str, auth_mode: str = "client-credentials") -> str:
    """Remediation message for a permission denial, chosen by the resource named in the error."""
    entry = resource_for(error_text)
    permissions = "\n".join(f"- **{permission}**" for permission in entry.permissions)
    alternatives = "\n".join(f'   - "{query}"' for query in ALTERNATIVE_QUERIES)
    return (
        "**Microsoft Graph Permission Error**\n\n"
        f"The current session does not have sufficient permissions to access {entry.resource}.\n\n"
        f"**Required Permissions:**\n{permissions}\n\n"
        f"**Current Session**: {auth_mode}\n\n"
        "**To resolve this issue:**\n\n"
        f"{_resolution_steps(entry, auth_mode)}\n\n"
        f"3. **Try a different query** that needs fewer permissions, such as:\n{alternatives}"
    )


def argument_echo_text(auth_mode: str = "client-credentials") -> str:
    """Message for a tool server that echoed its arguments instead of running the query."""
    return (
        "**Microsoft Graph Permission Error**\n\n"
        "The directory tool returned its own query arguments instead of data, which means "
        "the query could not be executed with the current credentials.\n\n"
        f"**Current Session**: {auth_mode}\n\n"
        "Make sure the service principal used by the tool server has been granted the "
        "Microsoft Graph permissions the query needs (for example **User.Read.All** or "
        "**Directory.Read.All**) and that admin consent was given."
    )
