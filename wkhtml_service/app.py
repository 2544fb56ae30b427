"""
wkhtml-service - FastAPI application for HTML to PDF/JPEG conversion.

Each /pdf or /jpg request runs the configured wkhtmltopdf / wkhtmltoimage
binary exactly once and returns the rendered file. ``app`` is configured from
the environment (``uvicorn wkhtml_service.app:app``); create_app() builds an
instance around explicit settings.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Dict, List, Optional, TypeVar

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from . import __version__
from .arguments import conversion_request_from_form, form_from_multi_items, parse_urlencoded
from .config import ServiceSettings, get_settings, validate_config_on_startup
from .converter import binary_version, convert
from .errors import ConversionError, InvalidRequest, RequestCancelled
from .middleware import RequestContextMiddleware, remaining_time
from .models import OutputFormat

logger = logging.getLogger(__name__)

T = TypeVar("T")

router = APIRouter()


# ============================================================================
# Request helpers
# ============================================================================

def _settings(request: Request) -> ServiceSettings:
    return request.app.state.settings


async def _read_form(request: Request) -> Dict[str, List[str]]:
    """
    Body fields first, then query-string fields.

    Url-encoded bodies and the query string are split here rather than by
    Starlette's form parser, which decodes values as latin-1 and replaces
    undecodable bytes; inline HTML must reach the binary byte for byte.
    """
    query = parse_urlencoded(request.scope.get("query_string", b""))
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/x-www-form-urlencoded"):
            body = parse_urlencoded(await request.body())
            return form_from_multi_items(body, query)
        if content_type.startswith("multipart/form-data"):
            async with request.form() as form:
                return form_from_multi_items(form.multi_items(), query)
    except Exception as e:
        raise InvalidRequest("failed to parse form", cause=e) from e
    return form_from_multi_items(query)


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        try:
            message = await request.receive()
        except asyncio.TimeoutError:
            # Body chunk read timed out; keep listening for the disconnect.
            continue
        if message["type"] == "http.disconnect":
            return


async def _run_until_disconnected(request: Request, work: Awaitable[T]) -> T:
    """
    Await ``work`` but cancel it if the client disconnects first.

    Cancelling the work kills the running binary and unwinds its temp files
    before this returns or raises.
    """
    task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    if task.cancelled():
        logger.warning(f"Client disconnected, cancelled {request.url.path}")
        raise RequestCancelled("client disconnected")
    return task.result()


async def _convert_response(request: Request, output_format: OutputFormat) -> Response:
    settings = _settings(request)
    form = await _read_form(request)
    conversion = conversion_request_from_form(output_format, form)

    output = await _run_until_disconnected(
        request,
        convert(conversion, settings, timeout=remaining_time(request, settings.web_timeout)),
    )

    logger.debug(f"Rendered {len(output)} byte {output_format.value}")
    return Response(content=output, media_type=output_format.media_type)


# ============================================================================
# Endpoints
# ============================================================================

@router.api_route("/healthz", methods=["GET", "POST"], response_class=PlainTextResponse)
async def healthz() -> PlainTextResponse:
    """Liveness check; never touches the rendering binaries."""
    return PlainTextResponse("OK")


@router.api_route("/version", methods=["GET", "POST"])
async def version(request: Request) -> Response:
    """Raw ``wkhtmltopdf --version`` output."""
    settings = _settings(request)
    output = await _run_until_disconnected(
        request,
        binary_version(settings, timeout=remaining_time(request, settings.web_timeout)),
    )
    return Response(content=output, media_type="text/plain")


@router.api_route("/pdf", methods=["GET", "POST"])
async def pdf(request: Request) -> Response:
    """
    Render ``url`` or inline ``html`` to PDF.

    ``options[<name>]=<value>`` fields are passed to wkhtmltopdf as
    ``--<name> <value>`` (value omitted when empty).
    """
    return await _convert_response(request, OutputFormat.PDF)


@router.api_route("/jpg", methods=["GET", "POST"])
async def jpg(request: Request) -> Response:
    """Render ``url`` or inline ``html`` to JPEG via wkhtmltoimage."""
    return await _convert_response(request, OutputFormat.JPG)


async def conversion_error_handler(request: Request, exc: ConversionError) -> PlainTextResponse:
    """Every conversion failure becomes a plain-text error response."""
    logger.warning(f"{request.url.path} failed: {exc.message}")
    return PlainTextResponse(exc.message, status_code=exc.status_code)


# ============================================================================
# Application factory
# ============================================================================

def create_app(settings: Optional[ServiceSettings] = None) -> FastAPI:
    """
    Build the service around an explicit, read-only settings object.

    Falls back to settings read from the environment when none is given.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"wkhtml-service {__version__} starting")
        validate_config_on_startup(settings)
        yield
        logger.info("wkhtml-service stopped")

    app = FastAPI(
        title="wkhtml-service",
        version=__version__,
        description="HTML to PDF/JPEG conversion via wkhtmltopdf",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        RequestContextMiddleware,
        request_timeout=settings.web_timeout,
        read_timeout=settings.web_read_timeout,
        write_timeout=settings.web_write_timeout,
    )
    app.add_exception_handler(ConversionError, conversion_error_handler)
    app.include_router(router)

    return app


# Environment-configured instance; the CLI builds its own via create_app(settings).
app = create_app()
