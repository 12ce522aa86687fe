from authcore.models.principal import Principal

__all__ = ["Principal"]
