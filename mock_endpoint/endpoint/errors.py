class MockEndpointError(Exception):
    """Base class for errors raised while setting up a mock endpoint."""


class InvalidAddressError(MockEndpointError, ValueError):
    """The address string is not a usable `host:port` pair."""


class EndpointBindError(MockEndpointError):
    """The listening socket could not be bound, even after the retry."""

    def __init__(self, address: str, retry_delay: float):
        super().__init__(
            f"could not bind mock endpoint to {address} "
            f"(retried once after {retry_delay:g}s)"
        )
        self.address = address
        self.retry_delay = retry_delay


class EndpointStartError(MockEndpointError):
    """The server thread did not come up on the bound socket."""
