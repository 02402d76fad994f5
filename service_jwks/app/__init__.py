"""
JWKS cache application modules.
"""
