"""Turn pipeline: analysis, tool calls with recovery, normalization and the final answer."""

import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote_plus

import structlog

from assistant_gateway.config.settings import Settings, get_settings
from assistant_gateway.conversation.context import ConversationContextManager
from assistant_gateway.normalization.normalizer import NormalizedResult, ResponseNormalizer, ResultKind
from assistant_gateway.normalization.rendering import render_count
from assistant_gateway.orchestrator.reference_docs import fallback_documentation
from assistant_gateway.providers.base import ChatMessage
from assistant_gateway.providers.prompts import build_response_prompt
from assistant_gateway.providers.selector import ProviderSelector, describe_provider_error
from assistant_gateway.recovery.engine import RecoveryEngine, ToolCallOutcome
from assistant_gateway.routing.analyzer import QueryAnalyzer
from assistant_gateway.routing.models import QueryAnalysis
from assistant_gateway.telemetry.logger import TurnContext
from assistant_gateway.tools.client import HttpToolServerClient, ToolServerClient
from assistant_gateway.tools.directives import DirectiveExecutor
from assistant_gateway.tools.graph import GraphToolRouter, call_tool_with_timeout

logger = structlog.get_logger()

URL_PATTERN = re.compile(r"https?://[^\s<>\"')]+")


@dataclass
class TurnTrace:
    steps: List[str] = field(default_factory=list)
    timing: Dict[str, float] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def step(self, message: str) -> None:
        self.steps.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)
        self.steps.append(message)


@dataclass
class TurnResult:
    analysis: QueryAnalysis
    final_response: str
    tool_outcomes: Dict[str, Any] = field(default_factory=dict)
    normalized: Optional[NormalizedResult] = None
    trace: TurnTrace = field(default_factory=TurnTrace)
    session_id: Optional[str] = None


def _contains_count(text: str, value: Any) -> bool:
    candidates = {str(value)}
    if isinstance(value, int):
        candidates.add(f"{value:,}")
    # 10000 and 21,000 must not pass for 1000
    return any(re.search(rf"(?<!\d)(?<!\d[,.]){re.escape(candidate)}(?![,.]?\d)", text) for candidate in candidates)


class Gateway:
    """Runs one user turn end to end and never raises except on cancellation."""

    def __init__(
        self,
        selector: ProviderSelector,
        settings: Optional[Settings] = None,
        tool_client: Optional[ToolServerClient] = None,
        recovery_engine: Optional[RecoveryEngine] = None,
        analyzer: Optional[QueryAnalyzer] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        conversations: Optional[ConversationContextManager] = None,
    ):
        self.settings = settings or get_settings()
        self.selector = selector
        self.tool_client = tool_client
        self.recovery_engine = recovery_engine
        self.analyzer = analyzer or QueryAnalyzer(selector)
        self.normalizer = normalizer or ResponseNormalizer(self.settings.auth_mode)
        self.conversations = conversations or ConversationContextManager(
            max_turns=self.settings.conversation_max_turns,
            max_context_length=self.settings.conversation_max_context_length,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, tool_client: Optional[ToolServerClient] = None):
        settings = settings or get_settings()
        if tool_client is None and settings.tool_servers:
            tool_client = HttpToolServerClient(settings.tool_servers, timeout=settings.tool_timeout)

        normalizer = ResponseNormalizer(settings.auth_mode)
        recovery_engine = None
        directive_executor = None
        if tool_client is not None:
            router = GraphToolRouter(tool_client, settings.graph_routes, timeout=settings.tool_timeout)
            recovery_engine = RecoveryEngine(router)
            directive_executor = DirectiveExecutor(
                tool_client, recovery_engine, normalizer, timeout=settings.tool_timeout
            )

        selector = ProviderSelector.from_settings(settings, directive_executor=directive_executor)
        return cls(
            selector,
            settings=settings,
            tool_client=tool_client,
            recovery_engine=recovery_engine,
            normalizer=normalizer,
        )

    async def handle_turn(
        self,
        messages: Sequence[ChatMessage],
        session_id: Optional[str] = None,
        heuristic_only: bool = False,
    ) -> TurnResult:
        start = time.monotonic()
        trace = TurnTrace()
        session_id = session_id or f"session-{uuid.uuid4().hex[:12]}"

        with TurnContext(session_id=session_id):
            try:
                result = await self._run_turn(messages, session_id, heuristic_only, trace)
            except Exception as e:
                trace.error(f"Turn pipeline failed: {e}")
                logger.error("Turn pipeline failed, falling back to basic chat", error=str(e))
                trace.step("Falling back to basic chat")
                result = TurnResult(
                    analysis=QueryAnalysis.empty("Analysis failed, using fallback response"),
                    final_response=await self._basic_chat(messages, trace),
                    trace=trace,
                    session_id=session_id,
                )
            trace.timing["total"] = time.monotonic() - start
            logger.info(
                "Turn completed",
                duration_ms=round(trace.timing["total"] * 1000, 2),
                errors=len(trace.errors),
            )
            return result

    async def _run_turn(
        self,
        messages: Sequence[ChatMessage],
        session_id: str,
        heuristic_only: bool,
        trace: TurnTrace,
    ) -> TurnResult:
        query = next((m.content for m in reversed(messages) if m.role == "user"), "")
        history = self.conversations.get_formatted_context(session_id)
        trace.step(f"Retrieved conversation context for session {session_id}")

        started = time.monotonic()
        analysis = await self.analyzer.analyze(query, history, heuristic_only=heuristic_only)
        trace.timing["analysis"] = time.monotonic() - started
        trace.step(f"Query analysis ({analysis.source}): {analysis.reasoning}")

        outcomes: Dict[str, Any] = {}
        sections: List[str] = []
        normalized: Optional[NormalizedResult] = None

        if analysis.needs_docs_tool:
            sections.append(await self._documentation(analysis.documentation_query or query, outcomes, trace))

        if analysis.needs_web_tool and self.tool_client is not None:
            web_text = await self._web_lookup(query, outcomes, trace)
            if web_text:
                sections.append(f"Web Results:\n{web_text}")

        if analysis.needs_graph_tool and analysis.endpoint:
            if self.recovery_engine is None:
                trace.error("Directory data was needed but no tool server is configured")
            else:
                started = time.monotonic()
                outcome = await self.recovery_engine.run(analysis.endpoint, analysis.method, analysis.params)
                trace.timing["graph"] = time.monotonic() - started
                outcomes["graph"] = outcome
                normalized = self._normalize_outcome(outcome, trace)
                sections.append(f"Directory Data:\n{normalized.rendered_text}")

        if sections:
            final_response = await self._final_response(query, "\n\n".join(sections), normalized, trace)
        else:
            trace.step("No tool data needed, answering directly")
            final_response = await self._basic_chat(messages, trace)

        self.conversations.add_turn(
            session_id,
            query,
            final_response,
            tool_results={name: str(value)[:1000] for name, value in outcomes.items()},
            analysis=analysis.model_dump(),
        )
        trace.step(f"Conversation turn saved for session {session_id}")

        return TurnResult(
            analysis=analysis,
            final_response=final_response,
            tool_outcomes=outcomes,
            normalized=normalized,
            trace=trace,
            session_id=session_id,
        )

    async def _documentation(self, docs_query: str, outcomes: Dict[str, Any], trace: TurnTrace) -> str:
        if self.tool_client is not None:
            server, tool = self.settings.docs_server, self.settings.docs_tool
            try:
                raw = await call_tool_with_timeout(
                    self.tool_client, server, tool, {"question": docs_query}, self.settings.tool_timeout
                )
            except Exception as e:
                trace.error(f"Documentation tool failed: {e}, using reference text")
                logger.warning("Documentation tool failed", server=server, error=str(e))
            else:
                outcomes["docs"] = raw
                trace.step("Documentation lookup completed")
                return f"Documentation:\n{self.normalizer.normalize(raw).rendered_text}"

        trace.step("Using static reference documentation")
        return f"Documentation:\n{fallback_documentation(docs_query)}"

    async def _web_lookup(self, query: str, outcomes: Dict[str, Any], trace: TurnTrace) -> Optional[str]:
        match = URL_PATTERN.search(query)
        url = match.group(0) if match else self.settings.web_search_url.format(query=quote_plus(query))
        server, tool = self.settings.web_server, self.settings.web_tool
        try:
            raw = await call_tool_with_timeout(
                self.tool_client, server, tool, {"url": url}, self.settings.tool_timeout
            )
        except Exception as e:
            trace.error(f"Web lookup failed: {e}")
            logger.warning("Web lookup failed", server=server, url=url, error=str(e))
            return None
        outcomes["web"] = raw
        trace.step(f"Web lookup completed for {url}")
        return self.normalizer.normalize(raw).rendered_text

    def _normalize_outcome(self, outcome: ToolCallOutcome, trace: TurnTrace) -> NormalizedResult:
        if outcome.succeeded:
            if outcome.attempts_made > 1 and outcome.strategy_used is not None:
                trace.step(f"Directory query recovered with {outcome.strategy_used.value}")
            else:
                trace.step("Directory query completed")
            return self.normalizer.normalize(outcome.raw_result)

        trace.error(f"Directory query failed: {outcome.error}")
        if outcome.note:
            trace.step(outcome.note)
        return self.normalizer.normalize_error(outcome.error)

    async def _final_response(
        self,
        query: str,
        context: str,
        normalized: Optional[NormalizedResult],
        trace: TurnTrace,
    ) -> str:
        response_messages = [
            ChatMessage(role="system", content=build_response_prompt(query, context)),
            ChatMessage(role="user", content=query),
        ]
        started = time.monotonic()
        try:
            response = await self.selector.chat(response_messages)
        except Exception as e:
            trace.error(f"Final response generation failed: {e}")
            return (
                f"I encountered an error while processing your request: {describe_provider_error(e)}\n\n"
                f"However, I was able to retrieve some data that might be helpful:\n\n{context}"
            )
        trace.timing["generation"] = time.monotonic() - started
        trace.step("Final response generated")

        if normalized is not None and normalized.kind == ResultKind.COUNT and not _contains_count(
            response, normalized.value
        ):
            trace.step("Model answer omitted the count, appending it")
            response = f"{response}\n\n{render_count(normalized.value)}"
        return response

    async def _basic_chat(self, messages: Sequence[ChatMessage], trace: TurnTrace) -> str:
        try:
            return await self.selector.chat(messages)
        except Exception as e:
            trace.error(f"Basic chat failed: {e}")
            return describe_provider_error(e)

    async def aclose(self) -> None:
        for provider in self.selector.state.chain():
            await provider.aclose()
        close = getattr(self.tool_client, "aclose", None)
        if close is not None:
            await close()
