"""Credential token adapters."""

from .postgres import PostgresTokenRepository

__all__ = ["PostgresTokenRepository"]
