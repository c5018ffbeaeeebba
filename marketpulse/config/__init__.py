from marketpulse.config.runtime import RuntimeSettings

__all__ = ["RuntimeSettings"]
