"""
Prometheus metrics for the waiting room gate.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the waiting room service.
    """

    def __init__(self, service_name: str = "waitroom", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Gate metrics
        self.enter_total = Counter(
            "waitroom_enter_total",
            "Enter attempts by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.decrypt_failures_total = Counter(
            "waitroom_decrypt_failures_total",
            "Tokens that failed to decrypt",
            ["code"],
            registry=self.registry,
        )

        self.ws_connections_active = Gauge(
            "waitroom_ws_connections_active",
            "Open gate WebSocket connections",
            registry=self.registry,
        )

        self.expiry_notifications_total = Counter(
            "waitroom_expiry_notifications_total",
            "Expired notifications pushed to clients",
            registry=self.registry,
        )

        self.sweeps_total = Counter(
            "waitroom_sweeps_total",
            "Sweeper runs by status",
            ["status"],
            registry=self.registry,
        )

        self.swept_sessions_total = Counter(
            "waitroom_swept_sessions_total",
            "Never-entered sessions deleted by the sweeper",
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())
            self.process_memory_bytes.labels(service=self.service_name).set(
                process.memory_info().rss
            )
            try:
                self.process_open_fds.labels(service=self.service_name).set(process.num_fds())
            except AttributeError:
                # num_fds() not available on all platforms
                pass
        except psutil.Error:
            pass

    def record_enter(self, outcome: str):
        """Record an enter attempt (success, replay, or a failure code)."""
        self.enter_total.labels(outcome=outcome).inc()

    def record_decrypt_failure(self, code: str):
        self.decrypt_failures_total.labels(code=code).inc()

    def record_expiry_notification(self):
        self.expiry_notifications_total.inc()

    def record_sweep(self, status: str, deleted: int):
        """Record a sweeper run."""
        self.sweeps_total.labels(status=status).inc()
        if deleted:
            self.swept_sessions_total.inc(deleted)
