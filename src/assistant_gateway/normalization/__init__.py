"""Tool result normalization"""

from assistant_gateway.normalization.normalizer import NormalizedResult, ResponseNormalizer, ResultKind

__all__ = ["NormalizedResult", "ResponseNormalizer", "ResultKind"]
