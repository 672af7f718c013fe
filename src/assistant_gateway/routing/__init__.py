"""Query routing"""

from assistant_gateway.routing.analyzer import QueryAnalyzer, parse_analysis
from assistant_gateway.routing.heuristics import HeuristicRouter
from assistant_gateway.routing.models import QueryAnalysis

__all__ = ["HeuristicRouter", "QueryAnalysis", "QueryAnalyzer", "parse_analysis"]
