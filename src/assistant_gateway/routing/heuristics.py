"""Deterministic keyword routing used when model-based analysis is unavailable."""

import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from assistant_gateway.routing.models import QueryAnalysis

BASE_CONFIDENCE = 0.7
NAME_BOOST = 0.2
DOUBLE_CONFIRMATION_BOOST = 0.1
AUTO_FILTER_BOOST = 0.1

PRODUCT_KEYWORDS = (
    "microsoft", "azure", "graph", "entra", "active directory", "aad", "office 365", "o365",
    "sharepoint", "teams", "outlook", "powershell", "oauth", "tenant", "app registration",
    "service principal", "conditional access", "intune", "defender", "permission", "licensing",
)
DOCS_CUES = (
    "explain", "what is", "what are", "how do i", "how to", "how can i", "documentation", "docs",
    "tell me about", "configure", "set up", "setup", "best practice",
)
SIGN_IN_KEYWORDS = ("sign in", "sign-in", "signin", "sign ins", "sign-ins", "signins", "login", "logon", "last access")
USER_KEYWORDS = ("user", "users", "people", "person", "account", "profile")
GROUP_KEYWORDS = ("group", "security group", "distribution list")
MAIL_KEYWORDS = ("mail", "email", "message", "inbox")
CALENDAR_KEYWORDS = ("calendar", "appointment", "meeting", "event")
APPLICATION_KEYWORDS = ("application", "app registration", "enterprise app")
COUNT_KEYWORDS = ("how many", "count", "number of", "total")

EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")
USER_NAME_PATTERN = re.compile(
    r"(?:user|person|account)\s+([\w.+-]+@[\w-]+(?:\.[\w-]+)+|\w+\.\w+|\w+)", re.IGNORECASE
)
DISPLAY_NAME_PATTERN = re.compile(r"(?:for|about|of)\s+([a-zA-Z]+(?:\s+[a-zA-Z]+)?)", re.IGNORECASE)

NAME_STOPWORDS = {
    "a", "an", "the", "all", "any", "my", "our", "this", "that", "last", "recent", "latest", "every",
    "account", "accounts", "activity", "sign", "signin", "signins", "login", "logins", "in", "with",
    "who", "data", "details", "info", "information", "count", "list", "users", "user", "me", "us",
    "today", "yesterday", "week", "month",
}


def _keyword_pattern(keyword: str) -> re.Pattern:
    # Plural forms match too: "account" matches "accounts"
    return re.compile(rf"\b{re.escape(keyword)}s?\b")


def matches_any(text: str, keywords: Iterable[str]) -> bool:
    return any(_keyword_pattern(keyword).search(text) for keyword in keywords)


def extract_user_name(query: str) -> Optional[str]:
    email = EMAIL_PATTERN.search(query)
    if email:
        return email.group(0)
    for match in USER_NAME_PATTERN.finditer(query):
        candidate = match.group(1)
        if candidate.lower() not in NAME_STOPWORDS:
            return candidate
    return None


def extract_display_name(query: str) -> Optional[str]:
    for match in DISPLAY_NAME_PATTERN.finditer(query):
        words = [word for word in match.group(1).split() if word.lower() not in NAME_STOPWORDS]
        if words and words[0] == match.group(1).split()[0]:
            return " ".join(words)
    return None


class HeuristicRouter:
    """Keyword and regex based query classification."""

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._clock = clock

    def analyze(self, query: str) -> QueryAnalysis:
        lowered = query.lower()

        is_sign_in = matches_any(lowered, SIGN_IN_KEYWORDS)
        is_user = matches_any(lowered, USER_KEYWORDS)
        is_group = matches_any(lowered, GROUP_KEYWORDS)
        is_mail = matches_any(lowered, MAIL_KEYWORDS)
        is_calendar = matches_any(lowered, CALENDAR_KEYWORDS)
        is_application = matches_any(lowered, APPLICATION_KEYWORDS)
        is_count = matches_any(lowered, COUNT_KEYWORDS)

        graph_intent = is_sign_in or is_user or is_group or is_mail or is_calendar or is_application
        product_intent = matches_any(lowered, PRODUCT_KEYWORDS)
        docs_intent = product_intent and (not graph_intent or matches_any(lowered, DOCS_CUES))
        web_intent = not docs_intent and not graph_intent

        endpoint, params, reasoning, auto_filter = None, None, "", False
        user_name = extract_user_name(query) if graph_intent else None
        display_name = None

        if graph_intent:
            if is_sign_in:
                display_name = None if user_name else extract_display_name(query)
                endpoint, params, reasoning, auto_filter = self._sign_in_template(user_name, display_name)
            elif is_count and (is_user or is_group or is_application):
                resource = "users" if is_user else "groups" if is_group else "applications"
                endpoint = f"/{resource}/$count"
                params = {"ConsistencyLevel": "eventual"}
                reasoning = f"Count query for {resource} using the $count endpoint"
            elif is_user:
                endpoint, params, reasoning, auto_filter = self._user_template(lowered, user_name)
            elif is_group:
                endpoint, reasoning = "/groups", "Group query, listing groups"
            elif is_application:
                endpoint, reasoning = "/applications", "Application registration query"
            elif is_mail:
                endpoint, params, reasoning, auto_filter = self._mail_template(lowered)
            elif is_calendar:
                endpoint, params, reasoning, auto_filter = self._calendar_template(lowered)
            else:
                endpoint, reasoning = "/me", "Directory query without a specific resource"

        confidence = BASE_CONFIDENCE
        if user_name or display_name:
            confidence += NAME_BOOST
        if is_sign_in and is_user:
            confidence += DOUBLE_CONFIRMATION_BOOST
        if auto_filter:
            confidence += AUTO_FILTER_BOOST

        if docs_intent and not graph_intent:
            reasoning = "Heuristic routing: product documentation question"
        elif web_intent:
            reasoning = "Heuristic routing: general web lookup"
        else:
            reasoning = f"Heuristic routing: directory data. {reasoning}".strip()

        return QueryAnalysis(
            needs_docs_tool=docs_intent,
            needs_graph_tool=graph_intent,
            needs_web_tool=web_intent,
            endpoint=endpoint,
            method="get",
            params=params,
            documentation_query=query if docs_intent else None,
            confidence=min(confidence, 1.0),
            reasoning=reasoning,
            source="heuristic",
        )

    @staticmethod
    def _sign_in_template(
        user_name: Optional[str], display_name: Optional[str]
    ) -> Tuple[str, Dict[str, Any], str, bool]:
        endpoint = "/auditLogs/signIns"
        if user_name:
            local_part = user_name.split("@")[0]
            return (
                endpoint,
                {
                    "$filter": f"userPrincipalName eq '{user_name}' or contains(userDisplayName,'{local_part}')",
                    "$orderby": "createdDateTime desc",
                    "$top": 10,
                },
                f"Sign-in query for '{user_name}', filtered by principal name and display name",
                True,
            )
        if display_name:
            return (
                endpoint,
                {
                    "$filter": f"contains(userDisplayName,'{display_name}')",
                    "$orderby": "createdDateTime desc",
                    "$top": 10,
                },
                f"Sign-in query for '{display_name}', filtered by display name",
                True,
            )
        return (
            endpoint,
            {"$orderby": "createdDateTime desc", "$top": 20},
            "Sign-in activity query, most recent first",
            False,
        )

    @staticmethod
    def _user_template(lowered: str, user_name: Optional[str]) -> Tuple[str, Optional[Dict[str, Any]], str, bool]:
        if matches_any(lowered, ("guest",)):
            return "/users", {"$filter": "userType eq 'Guest'"}, "Guest account query with a userType filter", True
        if user_name:
            local_part = user_name.split("@")[0]
            return (
                "/users",
                {"$filter": f"userPrincipalName eq '{user_name}' or contains(displayName,'{local_part}')"},
                f"Lookup of user '{user_name}' by principal name and display name",
                True,
            )
        return "/users", None, "User query, listing users", False

    @staticmethod
    def _mail_template(lowered: str) -> Tuple[str, Optional[Dict[str, Any]], str, bool]:
        if "unread" in lowered:
            return "/me/messages", {"$filter": "isRead eq false", "$top": 20}, "Unread mail with an isRead filter", True
        if "recent" in lowered or "latest" in lowered:
            return (
                "/me/messages",
                {"$orderby": "receivedDateTime desc", "$top": 10},
                "Recent mail ordered by received date",
                False,
            )
        return "/me/messages", None, "Mail query", False

    def _calendar_template(self, lowered: str) -> Tuple[str, Optional[Dict[str, Any]], str, bool]:
        now = self._clock()
        if "today" in lowered:
            day = now.strftime("%Y-%m-%d")
            return (
                "/me/events",
                {
                    "$filter": f"start/dateTime ge '{day}T00:00:00' and start/dateTime lt '{day}T23:59:59'",
                    "$orderby": "start/dateTime",
                },
                "Today's events with a date filter",
                True,
            )
        if "upcoming" in lowered or "next" in lowered:
            return (
                "/me/events",
                {
                    "$filter": f"start/dateTime ge '{now.strftime('%Y-%m-%dT%H:%M:%S')}'",
                    "$orderby": "start/dateTime",
                    "$top": 10,
                },
                "Upcoming events filtered to the future",
                True,
            )
        return "/me/events", None, "Calendar query", False
