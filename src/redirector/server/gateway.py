"""Redirect gateway: applies engine outcomes to live HTTP connections."""

from __future__ import annotations

import html
import re
import time
from http import HTTPStatus

import structlog
from aiohttp import hdrs, web

from redirector.core.config import parse_bind
from redirector.observability.metrics import GatewayMetrics, get_content_type
from redirector.rewrite.engine import Close, FixedResponse, Outcome, Redirect, RedirectRequest, decide
from redirector.rewrite.rules import Configuration

logger = structlog.get_logger()


def _is_absolute_form(target: str) -> bool:
    return not target.startswith("/") and "://" in target


def request_host(request: web.Request) -> str:
    """Return the host a request is addressed to.

    An absolute-form target (``GET http://example.com/ HTTP/1.1``) names
    the host itself and wins over the Host header. Otherwise the Host
    header is used as received; a request without one has an empty host.
    """
    target = request.raw_path
    if _is_absolute_form(target):
        authority = re.split(r"[/?#]", target.split("://", 1)[1], maxsplit=1)[0]
        return authority.rpartition("@")[2]
    return request.headers.get(hdrs.HOST, "")


def request_target(request: web.Request) -> str:
    """Return the path and query of a request, without scheme or host."""
    target = request.raw_path
    if _is_absolute_form(target):
        return request.rel_url.raw_path_qs
    return target


def resolve_client_address(request: web.Request, client_ip_header: str | None) -> str:
    """Return the client address to report for a request.

    The trusted header wins when it is configured and present on the
    request; otherwise the peer address of the connection is used.
    """
    if client_ip_header:
        forwarded = request.headers.get(client_ip_header)
        if forwarded:
            return forwarded
    return request.remote or ""


def build_request(request: web.Request, client_ip_header: str | None = None) -> RedirectRequest:
    """Extract the engine's view of an aiohttp request."""
    return RedirectRequest(
        host=request_host(request),
        target=request_target(request),
        method=request.method,
        remote_addr=resolve_client_address(request, client_ip_header),
        user_agent=request.headers.get(hdrs.USER_AGENT, ""),
        referer=request.headers.get(hdrs.REFERER, ""),
    )


def _status_text(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return ""


def _redirect_response(method: str, outcome: Redirect) -> web.Response:
    response = web.Response(status=outcome.code, headers={hdrs.LOCATION: outcome.location})
    if method in (hdrs.METH_GET, hdrs.METH_HEAD):
        response.headers[hdrs.CONTENT_TYPE] = "text/html; charset=utf-8"
    if method == hdrs.METH_GET:
        link = html.escape(outcome.location)
        response.body = f'<a href="{link}">{_status_text(outcome.code)}</a>.\n'.encode()
    return response


def _fixed_response(outcome: FixedResponse) -> web.Response:
    return web.Response(
        status=outcome.code,
        headers=outcome.headers,
        body=outcome.body.encode(),
    )


def _close_connection(request: web.Request) -> web.Response:
    """Close the underlying connection without writing a response.

    The returned response is never written once the transport is closed,
    and the gateway runs without aiohttp's access log so it is not
    recorded either. Without a transport to close, a 500 is sent instead.
    """
    transport = request.transport
    if transport is None:
        logger.warning(
            "Connection close requested but transport is unavailable",
            host=request_host(request),
            path=request.raw_path,
        )
        return web.Response(status=HTTPStatus.INTERNAL_SERVER_ERROR)

    transport.close()
    return web.Response(status=HTTPStatus.INTERNAL_SERVER_ERROR)


class RedirectGateway:
    """HTTP server answering every request from a validated Configuration.

    The configuration is read-only for the life of the gateway; requests
    are evaluated concurrently without locking.
    """

    def __init__(
        self,
        configuration: Configuration,
        metrics: GatewayMetrics | None = None,
        metrics_bind: str | None = None,
    ) -> None:
        self.configuration = configuration
        self.metrics = metrics if metrics is not None else GatewayMetrics()
        self.metrics_bind = metrics_bind

        self._http_runner: web.AppRunner | None = None
        self._control_runner: web.AppRunner | None = None

    def create_app(self) -> web.Application:
        """Build the application serving redirects on every path."""
        app = web.Application()
        app.router.add_route("*", "/{path:.*}", self.handle_request)
        return app

    def create_control_app(self) -> web.Application:
        """Build the application serving /metrics and /health."""
        app = web.Application()
        app.router.add_get("/health", self._handle_health_check)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self) -> None:
        """Start listening on the configured addresses."""
        # handle_request logs hits itself; no access log for closed connections
        self._http_runner = web.AppRunner(self.create_app(), access_log=None)
        await self._http_runner.setup()

        host, port = parse_bind(self.configuration.listen_address)
        await web.TCPSite(self._http_runner, host, port).start()
        logger.info("Redirect gateway started", host=host, port=port)

        if self.metrics_bind:
            self._control_runner = web.AppRunner(self.create_control_app())
            await self._control_runner.setup()

            control_host, control_port = parse_bind(self.metrics_bind)
            await web.TCPSite(self._control_runner, control_host, control_port).start()
            logger.info("Control plane started", host=control_host, port=control_port)

    async def stop(self) -> None:
        """Stop the gateway gracefully."""
        logger.info("Stopping redirect gateway...")

        if self._control_runner:
            await self._control_runner.cleanup()
            self._control_runner = None
        if self._http_runner:
            await self._http_runner.cleanup()
            self._http_runner = None

        logger.info("Redirect gateway stopped")

    async def handle_request(self, request: web.Request) -> web.StreamResponse:
        """Evaluate one request and apply the outcome."""
        request_start = time.perf_counter()
        self.metrics.in_flight_requests.inc()
        try:
            outcome = decide(
                self.configuration,
                build_request(request, self.configuration.client_ip_header),
            )
            if outcome.log_hits:
                logger.info("Request handled", **outcome.log_fields())
            response = self.render(request, outcome)
        finally:
            self.metrics.in_flight_requests.dec()

        self.metrics.observe(outcome.metric_labels(), time.perf_counter() - request_start)
        return response

    def render(self, request: web.Request, outcome: Outcome) -> web.StreamResponse:
        """Turn an outcome into an aiohttp response."""
        if isinstance(outcome, Redirect):
            return _redirect_response(request.method, outcome)
        if isinstance(outcome, FixedResponse):
            return _fixed_response(outcome)
        if isinstance(outcome, Close):
            return _close_connection(request)
        raise TypeError(f"Unknown outcome type: {type(outcome).__name__}")

    async def _handle_health_check(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "healthy"})

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        return web.Response(
            body=self.metrics.generate(),
            content_type=get_content_type(),
        )
