"""Teamsync - team membership consistency layer for multi-tenant SaaS."""

__version__ = "0.1.0"
