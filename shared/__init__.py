"""
Shared utilities for the zkLogin salt service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator for outbound calls

Do not import from service_* packages into shared/.
"""
