"""
Common building blocks shared by the pipeline stages and the daemon.

This package contains the domain-agnostic plumbing:

- configuration loading (environment variables)
- structlog logging configuration
- domain models and the exception hierarchy
- collaborator interfaces plus the in-memory and REST implementations
- retry/backoff helpers and the polling thread-pool loop
"""
