"""Credential encryption, secrets and owner authentication."""

from .encryption import (
    CredentialCipher,
    CredentialDecryptionError,
    decrypt,
    derive_key,
    encrypt,
)
from .owner_auth import (
    OwnerAuthError,
    OwnerIdentity,
    OwnerTokenVerifier,
    create_owner_dependency,
    extract_bearer_token,
)
from .secrets import (
    SecretValidationError,
    ShareSecrets,
    load_share_secrets,
    validate_secrets,
)

__all__ = [
    'CredentialCipher',
    'CredentialDecryptionError',
    'OwnerAuthError',
    'OwnerIdentity',
    'OwnerTokenVerifier',
    'SecretValidationError',
    'ShareSecrets',
    'create_owner_dependency',
    'decrypt',
    'derive_key',
    'encrypt',
    'extract_bearer_token',
    'load_share_secrets',
    'validate_secrets',
]
