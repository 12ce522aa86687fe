from .dto import PrincipalCreateIn, PrincipalOut
from .service import PrincipalService

__all__ = ["PrincipalService", "PrincipalCreateIn", "PrincipalOut"]
