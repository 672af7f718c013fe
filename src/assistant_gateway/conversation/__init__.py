"""Conversation history"""

from assistant_gateway.conversation.context import ConversationContextManager, ConversationTurn

__all__ = ["ConversationContextManager", "ConversationTurn"]
