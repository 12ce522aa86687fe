from .service import CredentialManager

__all__ = ["CredentialManager"]
