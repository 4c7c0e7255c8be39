"""
Health Monitoring HTTP Server for gap-manager.

Provides a simple HTTP endpoint for monitoring engine status and the
latest report. Useful for integration with monitoring systems like
Prometheus, or for overlays that poll instead of reading the report file.

Endpoints:
    GET /health     - Basic health check (200 OK if running)
    GET /status     - JSON engine status
    GET /report     - Latest report as CarIdx* arrays
    GET /metrics    - Prometheus-compatible metrics

Usage:
    from gap_manager.output.health_server import HealthServer

    server = HealthServer(port=8080)
    server.set_engine(live_gap_engine)
    server.start()
"""

import json
import logging
import threading
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class HealthRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler for health endpoints."""

    # Class-level callbacks, set by HealthServer.set_engine()
    get_status: Optional[Callable[[], Dict[str, Any]]] = None
    get_report: Optional[Callable[[], Optional[Dict[str, Any]]]] = None

    def log_message(self, format, *args):
        """Suppress default HTTP logging."""
        pass

    def do_GET(self):
        """Handle GET requests."""
        if self.path == '/health':
            self._handle_health()
        elif self.path == '/status':
            self._handle_status()
        elif self.path == '/report':
            self._handle_report()
        elif self.path == '/metrics':
            self._handle_metrics()
        else:
            self.send_error(404, "Not Found")

    def _send(self, code: int, content_type: str, body: bytes):
        self.send_response(code)
        self.send_header('Content-Type', content_type)
        self.end_headers()
        self.wfile.write(body)

    def _send_json(self, code: int, payload: Any):
        self._send(code, 'application/json', json.dumps(payload, indent=2).encode())

    def _handle_health(self):
        """Basic health check - returns 200 if server is running."""
        self._send(200, 'text/plain', b'OK\n')

    def _handle_status(self):
        """Return JSON engine status."""
        if not self.get_status:
            self._send_json(503, {'error': 'No engine connected'})
            return
        try:
            self._send_json(200, self.get_status())
        except Exception as e:
            logger.error(f"Status request failed: {e}")
            self._send_json(500, {'error': str(e)})

    def _handle_report(self):
        """Return the latest report, 204 before the first tick."""
        if not self.get_report:
            self._send_json(503, {'error': 'No engine connected'})
            return
        report = self.get_report()
        if report is None:
            self.send_response(204)
            self.end_headers()
            return
        self._send_json(200, report)

    def _handle_metrics(self):
        """Return Prometheus-compatible metrics."""
        if not self.get_status:
            self._send(503, 'text/plain', b'# No engine connected\n')
            return
        try:
            metrics = self._format_prometheus_metrics(self.get_status())
            self._send(200, 'text/plain; version=0.0.4', metrics.encode())
        except Exception as e:
            logger.error(f"Metrics request failed: {e}")
            self._send(500, 'text/plain', f'# Error: {e}\n'.encode())

    def _format_prometheus_metrics(self, status: Dict[str, Any]) -> str:
        """Format status as Prometheus metrics."""
        lines = [
            '# HELP gap_manager_ticks_total Snapshots processed',
            '# TYPE gap_manager_ticks_total counter',
            f'gap_manager_ticks_total {status.get("ticks", 0)}',
            '',
            '# HELP gap_manager_rejected_snapshots_total Snapshots rejected as malformed',
            '# TYPE gap_manager_rejected_snapshots_total counter',
            f'gap_manager_rejected_snapshots_total {status.get("rejected_snapshots", 0)}',
            '',
            '# HELP gap_manager_session_resets_total History clears caused by SessionTime going backwards',
            '# TYPE gap_manager_session_resets_total counter',
            f'gap_manager_session_resets_total {status.get("session_resets", 0)}',
            '',
            '# HELP gap_manager_discontinuities_total Per-car history resets on backward progress',
            '# TYPE gap_manager_discontinuities_total counter',
            f'gap_manager_discontinuities_total {status.get("discontinuities", 0)}',
            '',
            '# HELP gap_manager_cars_tracked Cars with checkpoint history',
            '# TYPE gap_manager_cars_tracked gauge',
            f'gap_manager_cars_tracked {status.get("cars_tracked", 0)}',
            '',
            '# HELP gap_manager_uptime_seconds Engine uptime in seconds',
            '# TYPE gap_manager_uptime_seconds gauge',
            f'gap_manager_uptime_seconds {status.get("uptime_seconds", 0):.1f}',
            '',
            '# HELP gap_manager_state Engine state (1=WAITING, 2=TRACKING)',
            '# TYPE gap_manager_state gauge',
        ]

        state_map = {'WAITING': 1, 'TRACKING': 2}
        lines.append(f'gap_manager_state {state_map.get(status.get("state", "WAITING"), 0)}')
        lines.append('')
        return '\n'.join(lines)


class HealthServer:
    """
    HTTP server for health monitoring.

    Runs in a background thread and provides endpoints for monitoring
    the gap-manager engine.
    """

    def __init__(self, port: int = 8080, bind_address: str = '0.0.0.0', num_slots: int = 64):
        """
        Initialize the health server.

        Args:
            port: HTTP port to listen on
            bind_address: Address to bind to (default: all interfaces)
            num_slots: CarIdx array length for /report
        """
        self.port = port
        self.bind_address = bind_address
        self.num_slots = num_slots
        self.server: Optional[HTTPServer] = None
        self.thread: Optional[threading.Thread] = None
        self.engine = None
        self._running = False

    def set_engine(self, engine):
        """
        Connect to a LiveGapEngine for status reporting.

        Args:
            engine: LiveGapEngine instance
        """
        self.engine = engine
        HealthRequestHandler.get_status = self._get_status
        HealthRequestHandler.get_report = self._get_report

    def _get_status(self) -> Dict[str, Any]:
        if not self.engine:
            return {'error': 'No engine connected'}
        return self.engine.get_status()

    def _get_report(self) -> Optional[Dict[str, Any]]:
        if not self.engine or self.engine.last_report is None:
            return None
        return self.engine.last_report.to_telemetry(self.num_slots)

    def start(self):
        """Start the health server in a background thread."""
        if self._running:
            logger.warning("Health server already running")
            return

        try:
            self.server = HTTPServer(
                (self.bind_address, self.port),
                HealthRequestHandler
            )
            # Set timeout so handle_request doesn't block forever
            self.server.timeout = 1.0
            self._running = True

            self.thread = threading.Thread(
                target=self._serve,
                name="HealthServer",
                daemon=True
            )
            self.thread.start()

            logger.info(f"Health server started on http://{self.bind_address}:{self.port}")
            logger.info("  GET /health  - Health check")
            logger.info("  GET /status  - JSON status")
            logger.info("  GET /report  - Latest report")
            logger.info("  GET /metrics - Prometheus metrics")

        except OSError as e:
            logger.error(f"Failed to start health server: {e}")
            self._running = False

    def _serve(self):
        """Server loop (runs in background thread)."""
        while self._running:
            try:
                self.server.handle_request()
            except Exception as e:
                if self._running:
                    logger.debug(f"Health server request error: {e}")

    def stop(self):
        """Stop the health server."""
        self._running = False
        if self.server:
            try:
                self.server.server_close()
            except OSError as e:
                logger.debug(f"Error closing health server: {e}")
            self.server = None
        if self.thread:
            self.thread.join(timeout=2.0)
        logger.info("Health server stopped")
