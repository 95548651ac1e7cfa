"""Shared utilities: exceptions, fallbacks, circuit breaking and statistics."""
