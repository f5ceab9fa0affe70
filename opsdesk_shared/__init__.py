"""Shared request/response schemas for the opsdesk workflow service."""
