"""HTTP server exposing the metrics snapshot."""

import logging
import socket
import ssl
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from prometheus_client import CollectorRegistry
from prometheus_client.exposition import choose_encoder

from ..config.models import WebConfig


LANDING_PAGE = """<html>
<head><title>Transmission Exporter</title></head>
<body>
<h1>Transmission Exporter</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>
"""


class MetricsServer:
    """
    Threaded HTTP server for the telemetry endpoint.

    Each request is handled on its own thread, so concurrent scrapes
    run concurrently.
    """

    def __init__(
        self,
        registry: CollectorRegistry,
        config: WebConfig,
        logger: logging.Logger = None
    ):
        """
        Initialize and bind the metrics server.

        Args:
            registry: Registry rendered on the telemetry path
            config: Listener configuration
            logger: Optional logger instance

        Raises:
            OSError: If the listen address cannot be bound
            ssl.SSLError: If the TLS certificate or key cannot be loaded
        """
        self.registry = registry
        self.config = config
        self.logger = (logger or logging.getLogger(__name__)).getChild(self.__class__.__name__)

        server_class = ThreadingHTTPServer
        if ":" in config.host:
            server_class = type("ThreadingHTTPServerV6", (ThreadingHTTPServer,), {"address_family": socket.AF_INET6})

        self.httpd = server_class((config.host, config.port), self._make_handler())
        self.httpd.daemon_threads = True

        if config.tls_enabled:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            context.load_cert_chain(config.tls_cert_file, config.tls_key_file)
            self.httpd.socket = context.wrap_socket(self.httpd.socket, server_side=True)

    @property
    def server_port(self) -> int:
        """Port actually bound, useful when listening on port 0."""
        return self.httpd.server_address[1]

    def serve_forever(self) -> None:
        scheme = "https" if self.config.tls_enabled else "http"
        self.logger.info(
            f"Listening on {scheme}://{self.config.host or '0.0.0.0'}:{self.server_port}"
            f"{self.config.telemetry_path}"
        )
        self.httpd.serve_forever()

    def shutdown(self) -> None:
        """Stop serving and release the socket."""
        self.httpd.shutdown()
        self.httpd.server_close()

    def _make_handler(self):
        """Create a request handler with access to this server instance."""
        server = self

        class RequestHandler(BaseHTTPRequestHandler):
            def do_GET(self):
                path = self.path.split('?', 1)[0]
                if path == server.config.telemetry_path:
                    self._handle_metrics()
                elif path == '/':
                    self._handle_landing()
                elif path == '/healthz':
                    self._handle_healthz()
                else:
                    self._respond(404, b"404 page not found\n", "text/plain; charset=utf-8")

            def _respond(self, status_code: int, body: bytes, content_type: str):
                self.send_response(status_code)
                self.send_header("Content-Type", content_type)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def _handle_metrics(self):
                encoder, content_type = choose_encoder(self.headers.get("Accept"))
                try:
                    body = encoder(server.registry)
                except Exception as e:
                    server.logger.error(f"Failed to render metrics: {e}", exc_info=True)
                    self._respond(500, f"error gathering metrics: {e}\n".encode(), "text/plain; charset=utf-8")
                    return
                self._respond(200, body, content_type)

            def _handle_landing(self):
                body = LANDING_PAGE.format(path=server.config.telemetry_path).encode()
                self._respond(200, body, "text/html; charset=utf-8")

            def _handle_healthz(self):
                self._respond(200, b"ok\n", "text/plain; charset=utf-8")

            def log_message(self, fmt, *args):
                server.logger.debug(f"{self.address_string()} - {fmt % args}")

        return RequestHandler

