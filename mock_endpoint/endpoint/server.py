import socket
import threading
import time
from types import TracebackType
from typing import Any, Optional, Tuple, Type

import uvicorn

from mock_endpoint.config import settings
from mock_endpoint.endpoint.app import create_app
from mock_endpoint.endpoint.errors import EndpointBindError, EndpointStartError, InvalidAddressError
from mock_endpoint.endpoint.metrics import EndpointMetrics
from mock_endpoint.endpoint.state import EndpointState, RecordedRequest, ServerResponse
from mock_endpoint.logging import logger


def parse_address(address: Any) -> Tuple[str, int]:
    """
    Splits a `host:port` string into its parts.

    IPv6 literals must be bracketed (`[::1]:8080`). An empty host means all
    interfaces, the same as for `socket.bind`.

    Raises:
        TypeError: `address` is not a string.
        InvalidAddressError: the string has no usable port.
    """
    if not isinstance(address, str):
        raise TypeError(f"mock endpoint address must be a 'host:port' string, got {type(address).__name__}")

    host, sep, port_text = address.rpartition(":")
    if not sep:
        raise InvalidAddressError(f"missing port in address {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise InvalidAddressError(f"IPv6 host must be bracketed in address {address!r}")

    try:
        port = int(port_text)
    except ValueError:
        raise InvalidAddressError(f"invalid port {port_text!r} in address {address!r}") from None
    if not 0 <= port <= 65535:
        raise InvalidAddressError(f"port {port} out of range in address {address!r}")

    return host, port


def bind_socket(host: str, port: int) -> socket.socket:
    """Binds and starts listening, so connections queue up before the loop runs."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    return socket.create_server((host, port), family=family)


def format_base_url(host: str, port: int) -> str:
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}"


class MockEndpoint:
    """
    A live HTTP endpoint that records the last request and serves a canned response.

    Use `MockEndpoint.start()` for an ephemeral port on loopback, or
    `MockEndpoint.start_at("host:port")` when the client under test has the
    address baked in:

        endpoint = MockEndpoint.start()
        endpoint.set_response(ServerResponse(
            status_code=404,
            body="{}",
            headers={"Content-Type": ["application/json"]},
        ))
        ...
        assert endpoint.last_method() == "GET"
        endpoint.stop()

    The endpoint serves from a daemon thread until `stop()` is called (or the
    `with` block exits); nothing stops it implicitly.
    """

    def __init__(self, sock: socket.socket) -> None:
        self._socket = sock
        host, port = sock.getsockname()[:2]
        self._address = (host, port)
        self._base_url = format_base_url(host, port)

        self._state = EndpointState()
        self._metrics = EndpointMetrics()
        self._app = create_app(self._state, self._metrics)
        self._config = uvicorn.Config(
            self._app,
            log_level=settings.server_log_level,
            access_log=False,
            timeout_graceful_shutdown=int(settings.shutdown_timeout) or 1,
        )
        self._server = uvicorn.Server(self._config)
        self._thread: Optional[threading.Thread] = None
        self._stopped = False
        self._stop_lock = threading.Lock()

    # --- Construction ---

    @classmethod
    def start(cls) -> "MockEndpoint":
        """Starts an endpoint on an OS-assigned port of the default host."""
        sock = bind_socket(settings.default_host, 0)
        return cls._launch(sock)

    @classmethod
    def start_at(cls, address: str, retry_delay: Optional[float] = None) -> "MockEndpoint":
        """
        Starts an endpoint on an explicit `host:port` address.

        A failed bind is retried exactly once after `retry_delay` seconds
        (`settings.bind_retry_delay` by default). The listener of a previous
        test is often still being torn down when the next test starts; if it
        is still there after the delay, the address is really taken.

        Raises:
            TypeError: `address` is not a string.
            InvalidAddressError: `address` is not `host:port`.
            EndpointBindError: both bind attempts failed.
            EndpointStartError: the server thread did not start.
        """
        host, port = parse_address(address)
        if retry_delay is None:
            retry_delay = settings.bind_retry_delay

        try:
            sock = bind_socket(host, port)
        except OSError as e:
            logger.warning(f"Bind to {address} failed ({e}), retrying in {retry_delay:g}s")
            time.sleep(retry_delay)
            try:
                sock = bind_socket(host, port)
            except OSError as retry_error:
                logger.error(f"Bind to {address} failed again: {retry_error}")
                raise EndpointBindError(address, retry_delay) from retry_error

        return cls._launch(sock)

    @classmethod
    def _launch(cls, sock: socket.socket) -> "MockEndpoint":
        try:
            endpoint = cls(sock)
            endpoint._serve()
        except Exception:
            sock.close()
            raise
        return endpoint

    def _serve(self) -> None:
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [self._socket]},
            name=f"mock-endpoint-{self._address[1]}",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + settings.startup_timeout
        while not self._server.started:
            if not self._thread.is_alive():
                raise EndpointStartError(f"mock endpoint server thread exited before serving {self._base_url}")
            if time.monotonic() > deadline:
                self._server.should_exit = True
                self._thread.join(timeout=settings.shutdown_timeout)
                raise EndpointStartError(
                    f"mock endpoint at {self._base_url} did not start within {settings.startup_timeout:g}s"
                )
            time.sleep(0.01)

        logger.info(f"Mock endpoint serving at {self._base_url}")

    # --- Accessors ---

    def last_method(self) -> str:
        return self._state.last_request().method

    def last_path(self) -> str:
        return self._state.last_request().path

    def last_body(self) -> str:
        return self._state.last_request().body

    def last_request(self) -> RecordedRequest:
        """Returns a snapshot of everything recorded about the last request."""
        return self._state.last_request()

    def response(self) -> ServerResponse:
        return self._state.response()

    def base_url(self) -> str:
        """The `http://host:port` URL the endpoint is reachable at."""
        return self._base_url

    @property
    def address(self) -> Tuple[str, int]:
        return self._address

    def request_count(self, method: Optional[str] = None) -> int:
        return self._metrics.request_count(method)

    def metrics(self) -> str:
        """Returns this endpoint's request metrics in Prometheus text format."""
        return self._metrics.render()

    # --- Mutators ---

    def set_response(self, response: ServerResponse) -> None:
        """
        Replaces the response served to all subsequent requests.

        The previous response is discarded, not merged. Requests already
        being answered keep the response they started with.
        """
        self._state.set_response(response)

    def reset(self) -> None:
        """Forgets the last request and goes back to the default 200 response."""
        self._state.reset()

    def stop(self) -> None:
        """
        Stops serving and releases the listening socket.

        Returns once the server thread has exited (or `shutdown_timeout`
        elapsed). New connections are refused afterwards. Calling it again
        does nothing.
        """
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True

        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=settings.shutdown_timeout)
            if self._thread.is_alive():
                logger.warning(
                    f"Mock endpoint thread for {self._base_url} still running after {settings.shutdown_timeout:g}s"
                )
        self._socket.close()
        logger.info(f"Mock endpoint at {self._base_url} stopped")

    @property
    def stopped(self) -> bool:
        return self._stopped

    def __enter__(self) -> "MockEndpoint":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.stop()

    def __repr__(self) -> str:
        state = "stopped" if self._stopped else "serving"
        return f"<MockEndpoint {self._base_url} {state}>"
