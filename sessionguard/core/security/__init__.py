"""
Security module for sessionguard.

Centralizes the CSRF verification protocol:
- Token issuance and constant-time verification
- Optional rotation after successful verification
- Path and URL exclusion matching
- Synchronization cookie construction
"""

from .csrf import (
    CsrfGuard,
    build_full_url,
    generate_csrf_token,
    matches_pattern,
    tokens_match
)

__all__ = [
    'CsrfGuard',
    'build_full_url',
    'generate_csrf_token',
    'matches_pattern',
    'tokens_match'
]
