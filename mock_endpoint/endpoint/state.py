import threading
from typing import Dict, List, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServerResponse(BaseModel):
    """
    The prerecorded response served to every request.

    Header values are lists so a header can be sent more than once
    (`Set-Cookie`, for instance); a bare string is accepted as a
    single-value shorthand.
    """

    model_config = ConfigDict(frozen=True)

    # h11 refuses to send a final response below 200.
    status_code: int = Field(default=200, ge=200, le=999)
    body: str = ""
    headers: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("headers", mode="before")
    @classmethod
    def _normalize_headers(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                name: [values] if isinstance(values, str) else list(values)
                for name, values in value.items()
            }
        return value


class RecordedRequest(BaseModel):
    """Snapshot of the last request the endpoint received."""

    model_config = ConfigDict(frozen=True)

    method: str = ""
    path: str = ""
    body: str = ""
    query: str = ""
    headers: Dict[str, List[str]] = Field(default_factory=dict)


class EndpointState:
    """
    The last recorded request and the current response, behind one lock.

    The server thread writes through `record()` while the test thread reads
    and reconfigures through the other methods. The lock is only ever held
    for an attribute swap; both models are frozen, so whatever a caller gets
    back stays valid after the lock is released. It is a plain mutex, so
    concurrent readers take turns as well; no section is long enough for a
    reader/writer lock to pay off.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_request = RecordedRequest()
        self._response = ServerResponse()

    def record(self, request: RecordedRequest) -> ServerResponse:
        """
        Stores `request` as the last request and returns the response to send.

        Both happen under the same lock acquisition, so the response handed
        back is the one that was configured when the request was recorded.
        """
        with self._lock:
            self._last_request = request
            return self._response

    def last_request(self) -> RecordedRequest:
        with self._lock:
            return self._last_request

    def response(self) -> ServerResponse:
        with self._lock:
            return self._response

    def set_response(self, response: ServerResponse) -> None:
        # Copy so later mutation of the caller's header lists cannot leak in.
        snapshot = ServerResponse(
            status_code=response.status_code,
            body=response.body,
            headers=response.headers,
        )
        with self._lock:
            self._response = snapshot

    def reset(self) -> None:
        with self._lock:
            self._last_request = RecordedRequest()
            self._response = ServerResponse()
