class FormGateError(Exception):
    """Base exception for the FormGate application."""

    pass


class ConfigurationError(FormGateError):
    """Raised when required configuration is missing or invalid."""

    pass


class DecryptionError(FormGateError):
    """Raised when a stored secret fails authenticated decryption."""

    def __init__(self, reason: str = "decryption failed"):
        self.reason = reason
        super().__init__(reason)


class BacklogError(FormGateError):
    """Raised when a Backlog API call fails."""

    def __init__(self, code: str, status: int = 0):
        self.code = code
        self.status = status
        super().__init__(f"Backlog request failed: {code} (status={status})")
