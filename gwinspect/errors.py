"""Exceptions raised by gwinspect."""


class GwInspectError(RuntimeError):
    """Base class for gwinspect errors."""


class FetchError(GwInspectError):
    """A resource could not be fetched for a reason other than not-found."""


class PolicyManagerError(GwInspectError):
    """Policy CRD discovery or instance listing failed."""


class ExtensionError(GwInspectError):
    """A graph extension failed; later extensions did not run."""

    def __init__(self, extension: str, message: str):
        super().__init__(f"extension {extension} failed: {message}")
        self.extension = extension
