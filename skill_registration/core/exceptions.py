class RegistrationError(Exception):
    """Base exception for a failed skill registration."""


class TransportError(RegistrationError):
    """A remote call or external tool failed. Always fatal for the invocation."""

    def __init__(self, step: str, detail: str):
        self.step = step
        self.detail = detail
        super().__init__(f"{step} failed: {detail}")


class ImageTransportError(TransportError):
    pass


class SourceControlError(TransportError):
    pass


class CatalogError(TransportError):
    pass


class EventStreamError(TransportError):
    pass


class DescriptorError(RegistrationError):
    def __init__(self, source: str, detail: str):
        self.source = source
        super().__init__(f"Invalid skill descriptor in {source}: {detail}")
