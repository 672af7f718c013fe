"""Recovery for failed directory queries"""

from assistant_gateway.recovery.engine import RecoveryEngine, RecoveryStrategy, ToolCallOutcome

__all__ = ["RecoveryEngine", "RecoveryStrategy", "ToolCallOutcome"]
