"""Configuration for azp-bootstrap (settings and user-facing messages)."""
