"""tenantguard - multi-tenant privilege resolution and credential token validation."""

__version__ = "0.1.0"
