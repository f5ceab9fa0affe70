"""Opsdesk workflow service: leave approval chains and task dependencies."""
