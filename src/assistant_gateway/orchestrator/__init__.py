"""Retry, availability caching and the turn pipeline."""
