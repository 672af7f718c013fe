"""LLM provider adapters, selection and failover."""
