"""
Test support utilities for taskhub tests.

Helpers that are not pytest fixtures: history event builders, fake
completion reporters and an in-memory coordinator that drives an
orchestration to completion.
"""
