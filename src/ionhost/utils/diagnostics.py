from typing import List, Optional


class IonError(Exception):
    """
    Base class for every failure raised by ionhost components.
    """


class FingerprintError(IonError):
    """Raised when a deployed tree cannot be walked or read."""


class RetrievalError(IonError):
    """
    Raised by an archive retriever that could not produce archive bytes.
    """
    def __init__(self, message: str, source: Optional[str] = None):
        self.message = message
        self.source = source
        ctx = f" from '{source}'" if source else ""
        super().__init__(f"Retrieval Error{ctx}: {message}")


class ArchiveTransportError(RetrievalError):
    """The request for a remote archive never produced a response."""


class ArchiveStatusError(RetrievalError):
    """The remote archive request completed with a non-200 status code."""

    def __init__(self, url: str, status_code: int):
        self.status_code = status_code
        super().__init__(f"returned status code {status_code}", source=url)


class RetrieverChainError(RetrievalError):
    """
    Raised when every retriever of a fallback chain failed.
    `causes` keeps each underlying failure in the order the retrievers ran.
    """
    def __init__(self, causes: List[BaseException]):
        self.causes = list(causes)
        if self.causes:
            detail = "; ".join(str(cause) for cause in self.causes)
        else:
            detail = "no retrievers configured"
        super().__init__(f"all {len(self.causes)} retrievers failed: {detail}")


class ArchiveExtractionError(IonError):
    """Raised when archive bytes cannot be unpacked into the target tree."""


class FinalizerError(IonError):
    """Raised when a post-extraction finalizer fails."""


class ProvisioningError(IonError):
    """
    Exception raised when a runtime bundle could not be deployed, carrying
    the target directory for context.
    """
    def __init__(self, message: str, target: Optional[str] = None):
        self.message = message
        self.target = target
        ctx = f" for '{target}'" if target else ""
        super().__init__(f"Provisioning Error{ctx}: {message}")


class StartupError(IonError):
    """Base class for failures that abort `Ion.start()`."""


class RendezvousError(StartupError):
    """The loopback listener could not be opened or accept failed."""


class RendezvousTimeoutError(RendezvousError):
    """The companion process did not connect back in time."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Timeout waiting for TCP connection after {timeout_seconds:.1f}s")


class LaunchError(StartupError):
    """The companion executable could not be started."""


class CompanionExitedError(StartupError):
    """The companion process went away before connecting back."""


class ChannelClosedError(IonError):
    """Raised when sending on a channel with no live connection."""
