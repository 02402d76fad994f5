"""
JWKS cache service package.

This package keeps a remote JSON Web Key Set cached in memory so tokens can
be validated without a network round trip per validation:

- app.jwks: The cache itself (expiry calculation, cache state, client and
  refresh drivers) plus the HTTP transport and key set codec it uses.
- app.keyfiles: Loads signing keys from a watched directory.
- app.main: FastAPI application that serves the cached key set.

Design notes:
- Module import must not perform network calls. All IO happens in
  refresh calls or explicit startup hooks.
- Use the shared/ utilities for logging, configuration and errors.
"""
