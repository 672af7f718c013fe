"""Static reference text used when the documentation tool server is unreachable."""

GROUP_MEMBERSHIP_REFERENCE = """# Microsoft Graph API - User Group Memberships

## Endpoints
- `GET /users/{id}/transitiveMemberOf`: groups, directory roles and administrative units, nested memberships included.
- `POST /users/{id}/getMemberGroups` with `{"securityEnabledOnly": false}`: group ids only, nested included.
- `GET /users/{id}/memberOf`: direct memberships only.

## Required Permissions
- User.Read.All
- GroupMember.Read.All
- Directory.Read.All (broader alternative)

Reference: https://learn.microsoft.com/en-us/graph/api/user-list-transitivememberof"""

SIGN_IN_REFERENCE = """# Microsoft Graph API - Sign-in Logs

## Endpoint
- `GET /auditLogs/signIns`, filterable by `userPrincipalName`, `createdDateTime` and `appDisplayName`.

## Required Permissions
- AuditLog.Read.All
- Directory.Read.All

Sign-in logs need a Microsoft Entra ID P1 or P2 license.

Reference: https://learn.microsoft.com/en-us/graph/api/signin-list"""

GENERIC_REFERENCE = """# Microsoft Graph API Documentation

For "{query}", see the official documentation:

- Microsoft Graph API reference: https://learn.microsoft.com/en-us/graph/api/overview
- Graph Explorer: https://developer.microsoft.com/en-us/graph/graph-explorer
- Permissions reference: https://learn.microsoft.com/en-us/graph/permissions-reference"""


def fallback_documentation(query: str) -> str:
    lowered = query.lower()
    if "group" in lowered and "member" in lowered:
        return GROUP_MEMBERSHIP_REFERENCE
    if "sign-in" in lowered or "signin" in lowered or "sign in" in lowered:
        return SIGN_IN_REFERENCE
    return GENERIC_REFERENCE.format(query=query)
