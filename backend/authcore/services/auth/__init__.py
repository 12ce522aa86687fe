from .dto import LoginIn, SessionOut, TokenPairOut
from .service import AuthService

__all__ = ["AuthService", "LoginIn", "SessionOut", "TokenPairOut"]
