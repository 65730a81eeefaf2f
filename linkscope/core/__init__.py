"""Core infrastructure - resilience primitives."""
