"""Entrypoints - ways to embed tenantguard in an application."""
