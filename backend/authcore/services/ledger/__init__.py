from .dto import RotationOut
from .service import RefreshTokenLedger

__all__ = ["RefreshTokenLedger", "RotationOut"]
