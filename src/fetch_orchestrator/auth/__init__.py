"""
Auth providers for fetch_orchestrator.
"""
from .auth_provider import (
    AuthProvider,
    AuthType,
    TokenAuthProvider,
    ApiKeyAuthProvider,
    BasicAuthProvider,
    CustomAuthProvider,
    create_auth_provider,
)

__all__ = [
    "AuthProvider",
    "AuthType",
    "TokenAuthProvider",
    "ApiKeyAuthProvider",
    "BasicAuthProvider",
    "CustomAuthProvider",
    "create_auth_provider",
]
