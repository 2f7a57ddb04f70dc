from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Any, Dict, List

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from mock_endpoint.endpoint.metrics import EndpointMetrics
from mock_endpoint.endpoint.state import EndpointState, RecordedRequest
from mock_endpoint.logging import logger


async def read_body(request: Request) -> bytes:
    """
    Reads the whole request body, returning b"" if it cannot be read.

    A client that disconnects mid-upload or sends a broken chunked body still
    gets recorded (with an empty body) and still gets the configured response.
    """
    try:
        return await request.body()
    except Exception as e:
        logger.warning(f"Could not read request body for {request.method} {request.scope['path']}: {e}")
        return b""


def collect_headers(request: Request) -> Dict[str, List[str]]:
    headers: Dict[str, List[str]] = {}
    for name, value in request.headers.items():
        headers.setdefault(name, []).append(value)
    return headers


async def serve_recorded(request: Request, state: EndpointState, metrics: EndpointMetrics) -> Response:
    """
    Records `request` and answers it with the currently configured response.
    """
    body = await read_body(request)

    recorded = RecordedRequest(
        method=request.method,
        path=request.scope["path"],
        body=body.decode("utf-8", errors="replace"),
        query=request.scope.get("query_string", b"").decode("latin-1"),
        headers=collect_headers(request),
    )
    configured = state.record(recorded)
    logger.debug(
        f"Recorded {recorded.method} {recorded.path} ({len(body)} bytes), "
        f"answering {configured.status_code}"
    )

    # The body is passed through untouched; it is never used as a template.
    response = Response(content=configured.body, status_code=configured.status_code)
    for name, values in configured.headers.items():
        for value in values:
            response.headers.append(name, value)

    metrics.record_request(recorded.method, len(body))
    return response


def create_app(state: EndpointState, metrics: EndpointMetrics) -> FastAPI:
    """
    Builds the ASGI application behind a mock endpoint.

    Every request is answered by the HTTP middleware before routing happens,
    so any method on any path reaches `serve_recorded`. The app has no routes
    of its own and the documentation routes are disabled.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.debug("Mock endpoint application starting")
        yield
        logger.debug("Mock endpoint application shutting down")

    app = FastAPI(
        title="Mock Endpoint",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.middleware("http")
    async def answer_every_request(request: Request, call_next: Callable[[Request], Any]) -> Response:
        return await serve_recorded(request, state, metrics)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Reports a failure inside the mock itself.

        This is never reached because of client input; it means the helper is
        broken, so the client gets a loud 500 rather than a hang.
        """
        logger.error(
            f"Unhandled exception in mock endpoint for URL: {request.url} - {str(exc)}", exc_info=True
        )
        return JSONResponse(status_code=500, content={"error": "Mock endpoint internal error"})

    return app
