from .service import SessionRegistry

__all__ = ["SessionRegistry"]
