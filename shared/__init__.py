"""
Shared utilities for the JWKS cache.

This package aggregates common building blocks consumed by the service
package and the scripts:

- config: Client, key directory and service configuration via pydantic-settings
- logging: Structured logging with key-source context
- errors: Canonical error types and responses
- base_service: FastAPI application scaffolding

Do not import from service_* packages into shared/.
"""
