from .credential_cipher import CredentialCipher, create_credential_cipher

__all__ = ["CredentialCipher", "create_credential_cipher"]
