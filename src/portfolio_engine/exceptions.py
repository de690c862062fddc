from typing import Optional

class EngineError(Exception):
    """Base class for engine failures; `reason` is a stable code callers can branch on"""

    reason = "engine_error"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        if reason is not None:
            self.reason = reason

class ConfigurationError(EngineError):
    """Raised when caller-supplied configuration is unusable (fatal, never auto-corrected)"""
    reason = "invalid_configuration"

class InsufficientDataError(EngineError):
    """Raised when there is not enough data to compute a result"""
    reason = "insufficient_data"

class ValidationError(EngineError):
    """Raised when a raw input record is malformed"""
    reason = "invalid_input"
