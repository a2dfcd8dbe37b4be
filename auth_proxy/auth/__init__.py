from .credentials import Credentials, CredentialVerifier, ExtractResult
from .gate import Access, AuthGateMiddleware, classify, is_public_path

__all__ = [
    "Credentials",
    "CredentialVerifier",
    "ExtractResult",
    "Access",
    "AuthGateMiddleware",
    "classify",
    "is_public_path",
]
