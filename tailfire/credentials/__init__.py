"""
Tailfire credentials — encrypted, versioned provider secrets and their
resolution at runtime.

Modules:
    providers    provider keys, source policies, registry and UI metadata
    validation   per-provider field schemas
    store        CredentialStore (create / rotate / rollback / revoke / reveal)
    resolver     CredentialResolver (env-only / db-only / hybrid)
    health       connection probes for the external data APIs
"""

from __future__ import annotations

from tailfire.credentials.models import CredentialMetadata, CredentialSecrets, CredentialStatus
from tailfire.credentials.providers import ApiProvider, SourcePolicy

__all__ = [
    "ApiProvider",
    "CredentialMetadata",
    "CredentialSecrets",
    "CredentialStatus",
    "SourcePolicy",
]
