"""Domain-specific errors for factfinder."""


class FactFinderError(Exception):
    """Base error for factfinder."""


class ReadPlanValidationError(FactFinderError):
    """Raised when a read plan does not conform to schema or semantics."""


class ProviderLoadError(FactFinderError):
    """Raised when a provider folder cannot be read."""


class ScriptLoadError(FactFinderError):
    """Raised when a fact builder script fails to load."""


class CallbackError(FactFinderError):
    """Raised when a script callback fails during dispatch."""

    def __init__(self, callback: str, watch: str | None, cause: BaseException) -> None:
        where = f" for watch '{watch}'" if watch else ""
        super().__init__(f"Callback '{callback}'{where} failed: {cause}")
        self.callback = callback
        self.watch = watch
        self.cause = cause


class GameNotLoadedError(FactFinderError):
    """Raised when the emulator answers but has no game loaded."""


class DecodeError(FactFinderError):
    """Raised when bytes cannot be decoded for a declared type or width."""


class TransportError(FactFinderError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when a transport cannot be opened."""


class TransportSendError(TransportError):
    """Raised when payload sending fails."""


class TransportTimeoutError(TransportError):
    """Raised when a response does not arrive in time."""


class ProtocolDesyncError(TransportError):
    """Raised when a batch returns a different byte count than requested."""
