"""Core configuration, clients and resilience helpers."""
