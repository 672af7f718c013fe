"""Tests for query routing."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from assistant_gateway.exceptions import ProviderExhaustedError
from assistant_gateway.providers.base import ProviderUnavailableError
from assistant_gateway.routing.analyzer import AnalysisParseError, QueryAnalyzer, parse_analysis
from assistant_gateway.routing.heuristics import HeuristicRouter, extract_display_name, extract_user_name
from assistant_gateway.routing.models import QueryAnalysis

FIXED_NOW = datetime(2026, 10, 18, 9, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def router():
    return HeuristicRouter(clock=lambda: FIXED_NOW)


class TestQueryAnalysisModel:
    @pytest.mark.parametrize("raw, expected", [(1.7, 1.0), (-0.3, 0.0), ("0.4", 0.4), ("high", 0.5), (None, 0.5)])
    def test_confidence_clamped(self, raw, expected):
        assert QueryAnalysis(confidence=raw).confidence == expected

    def test_nan_confidence(self):
        assert QueryAnalysis(confidence=float("nan")).confidence == 0.5

    def test_method_lower_cased(self):
        assert QueryAnalysis(method="GET").method == "get"
        assert QueryAnalysis(method=None).method == "get"
        assert QueryAnalysis(method="  ").method == "get"


class TestHeuristicRouter:
    def test_count_query(self, router):
        analysis = router.analyze("How many users do we have?")
        assert analysis.needs_graph_tool
        assert not analysis.needs_docs_tool
        assert not analysis.needs_web_tool
        assert analysis.endpoint == "/users/$count"
        assert analysis.params == {"ConsistencyLevel": "eventual"}
        assert analysis.confidence == pytest.approx(0.7)
        assert analysis.source == "heuristic"

    def test_group_count(self, router):
        analysis = router.analyze("What is the total number of groups?")
        assert analysis.endpoint == "/groups/$count"

    def test_guest_accounts(self, router):
        analysis = router.analyze("Show me guest accounts")
        assert analysis.endpoint == "/users"
        assert analysis.params == {"$filter": "userType eq 'Guest'"}
        assert analysis.confidence == pytest.approx(0.8)

    def test_product_docs(self, router):
        analysis = router.analyze("Explain Microsoft Entra")
        assert analysis.needs_docs_tool
        assert not analysis.needs_graph_tool
        assert not analysis.needs_web_tool
        assert analysis.documentation_query == "Explain Microsoft Entra"

    def test_general_web(self, router):
        analysis = router.analyze("Weather in Seattle")
        assert analysis.needs_web_tool
        assert not analysis.needs_docs_tool
        assert not analysis.needs_graph_tool

    def test_docs_beats_web_for_product_keyword(self, router):
        analysis = router.analyze("What is conditional access?")
        assert analysis.needs_docs_tool
        assert not analysis.needs_web_tool

    def test_keywords_match_on_word_boundaries(self, router):
        # "groupie" and "emailing" are not directory keywords
        analysis = router.analyze("Best groupie concerts")
        assert analysis.needs_web_tool
        assert not analysis.needs_graph_tool

    def test_sign_in_without_name(self, router):
        analysis = router.analyze("Show recent sign-ins")
        assert analysis.endpoint == "/auditLogs/signIns"
        assert analysis.params == {"$orderby": "createdDateTime desc", "$top": 20}
        assert analysis.confidence == pytest.approx(0.7)

    def test_sign_in_for_email(self, router):
        analysis = router.analyze("Show sign-in activity for john.doe@contoso.com")
        assert analysis.params["$filter"] == (
            "userPrincipalName eq 'john.doe@contoso.com' or contains(userDisplayName,'john.doe')"
        )
        assert analysis.params["$top"] == 10
        assert analysis.params["$orderby"] == "createdDateTime desc"
        assert analysis.confidence == pytest.approx(1.0)

    def test_sign_in_for_display_name(self, router):
        analysis = router.analyze("sign-in logs for Adele Vance")
        assert analysis.params["$filter"] == "contains(userDisplayName,'Adele Vance')"
        assert analysis.confidence == pytest.approx(1.0)

    def test_sign_in_doubly_confirmed_capped(self, router):
        analysis = router.analyze("Show sign-ins for user jane.smith")
        assert "jane.smith" in analysis.params["$filter"]
        assert analysis.confidence == 1.0

    def test_named_user_lookup(self, router):
        analysis = router.analyze("Find user adele@contoso.com")
        assert analysis.endpoint == "/users"
        assert "userPrincipalName eq 'adele@contoso.com'" in analysis.params["$filter"]

    def test_list_groups(self, router):
        analysis = router.analyze("List all groups")
        assert analysis.endpoint == "/groups"
        assert analysis.params is None

    def test_applications(self, router):
        assert router.analyze("Show application registrations").endpoint == "/applications"

    def test_unread_mail(self, router):
        analysis = router.analyze("Show my unread emails")
        assert analysis.endpoint == "/me/messages"
        assert analysis.params == {"$filter": "isRead eq false", "$top": 20}

    def test_recent_mail(self, router):
        analysis = router.analyze("Show my recent messages")
        assert analysis.params == {"$orderby": "receivedDateTime desc", "$top": 10}

    def test_todays_events(self, router):
        analysis = router.analyze("What meetings do I have today?")
        assert analysis.endpoint == "/me/events"
        assert "2026-10-18T00:00:00" in analysis.params["$filter"]

    def test_upcoming_events(self, router):
        analysis = router.analyze("Show upcoming calendar events")
        assert analysis.params["$filter"] == "start/dateTime ge '2026-10-18T09:30:00'"
        assert analysis.params["$top"] == 10


class TestNameExtraction:
    def test_email_anywhere(self):
        assert extract_user_name("logins for bob@fabrikam.com please") == "bob@fabrikam.com"

    def test_user_keyword(self):
        assert extract_user_name("details for user adele.vance") == "adele.vance"

    def test_stopwords_skipped(self):
        assert extract_user_name("show user details") is None
        assert extract_display_name("sign-ins for the last week") is None


class TestParseAnalysis:
    def test_json_embedded_in_prose(self):
        reply = 'Sure! Here it is:\n{"needs_graph_tool": true, "endpoint": "/users", "method": "GET", "confidence": 0.9}\nDone.'
        analysis = parse_analysis(reply)
        assert analysis.needs_graph_tool
        assert analysis.endpoint == "/users"
        assert analysis.method == "get"
        assert analysis.source == "llm"

    def test_wrong_types_coerced(self):
        reply = json.dumps(
            {
                "needs_docs_tool": "yes",
                "needs_graph_tool": "maybe",
                "endpoint": 42,
                "params": "not a dict",
                "confidence": 3,
            }
        )
        analysis = parse_analysis(reply)
        assert analysis.needs_docs_tool
        assert not analysis.needs_graph_tool
        assert analysis.endpoint is None
        assert analysis.params is None
        assert analysis.confidence == 1.0

    def test_legacy_keys(self):
        reply = json.dumps(
            {
                "needsLokkaMcp": True,
                "graphEndpoint": "/groups",
                "graphMethod": "get",
                "graphParams": {"$top": 5},
                "needsMicrosoftDocsMcp": False,
            }
        )
        analysis = parse_analysis(reply)
        assert analysis.needs_graph_tool
        assert analysis.endpoint == "/groups"
        assert analysis.params == {"$top": 5}

    def test_graph_without_endpoint_is_dropped(self):
        assert not parse_analysis('{"needs_graph_tool": true}').needs_graph_tool

    @pytest.mark.parametrize("reply", ["no json here", "{not json}", ""])
    def test_unparsable(self, reply):
        with pytest.raises(AnalysisParseError):
            parse_analysis(reply)

    def test_non_object_json(self):
        with pytest.raises(AnalysisParseError):
            parse_analysis("[1, 2]")


class TestQueryAnalyzer:
    @pytest.mark.asyncio
    async def test_llm_path(self):
        selector = MagicMock()
        selector.chat = AsyncMock(
            return_value='{"needs_graph_tool": true, "endpoint": "/users/$count", "params": {"ConsistencyLevel": "eventual"}}'
        )
        analyzer = QueryAnalyzer(selector)

        analysis = await analyzer.analyze("How many users?", conversation_context="## Conversation History")

        assert analysis.source == "llm"
        assert analysis.endpoint == "/users/$count"
        messages = selector.chat.await_args.args[0]
        assert messages[0].role == "system"
        assert "## Conversation History" in messages[0].content
        assert messages[1].content == 'Analyze this query: "How many users?"'
        assert selector.chat.await_args.kwargs == {"process_directives": False}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "side_effect",
        [
            ProviderExhaustedError(["ollama"]),
            ProviderUnavailableError("down", provider="openai:gpt-4o"),
        ],
    )
    async def test_provider_failure_falls_back(self, side_effect):
        selector = MagicMock()
        selector.chat = AsyncMock(side_effect=side_effect)

        analysis = await QueryAnalyzer(selector).analyze("How many users do we have?")

        assert analysis.source == "heuristic"
        assert analysis.endpoint == "/users/$count"

    @pytest.mark.asyncio
    async def test_unparsable_reply_falls_back(self):
        selector = MagicMock()
        selector.chat = AsyncMock(return_value="I think you want users.")
        analysis = await QueryAnalyzer(selector).analyze("Show me guest accounts")
        assert analysis.source == "heuristic"
        assert analysis.params == {"$filter": "userType eq 'Guest'"}

    @pytest.mark.asyncio
    async def test_heuristic_only_skips_llm(self):
        selector = MagicMock()
        selector.chat = AsyncMock()
        analysis = await QueryAnalyzer(selector).analyze("Weather in Seattle", heuristic_only=True)
        assert analysis.needs_web_tool
        selector.chat.assert_not_awaited()
