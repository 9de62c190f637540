"""
Prometheus metrics for the killfeed service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the killfeed service.
    """

    def __init__(self, service_name: str = "killfeed", version: str = "0.1.0", registry=None):
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
            registry=self.registry,
        )

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

        # Feed metrics
        self.polls_total = Counter(
            "killfeed_polls_total",
            "RedisQ poll cycles by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.poll_duration = Histogram(
            "killfeed_poll_duration_seconds",
            "Time spent waiting on one long-poll request",
            buckets=(0.1, 0.5, 1, 2.5, 5, 10, 15, 30),
            registry=self.registry,
        )

        self.killmails_received_total = Counter(
            "killfeed_killmails_received_total",
            "Killmails decoded and inserted into the store",
            registry=self.registry,
        )

        self.killmails_evicted_total = Counter(
            "killfeed_killmails_evicted_total",
            "Killmails removed by the retention sweep",
            registry=self.registry,
        )

        self.killmails_active = Gauge(
            "killfeed_killmails_active",
            "Killmails currently held in the store",
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

            memory_info = process.memory_info()
            self.process_memory_bytes.labels(service=self.service_name).set(memory_info.rss)

            try:
                num_fds = process.num_fds()
                self.process_open_fds.labels(service=self.service_name).set(num_fds)
            except AttributeError:
                # num_fds() not available on all platforms
                pass

        except psutil.Error:
            pass

    def record_poll(self, outcome: str, duration_seconds: float | None = None):
        """Record one poll cycle."""
        self.polls_total.labels(outcome=outcome).inc()
        if duration_seconds is not None:
            self.poll_duration.observe(duration_seconds)

    def record_killmail_received(self):
        self.killmails_received_total.inc()

    def record_sweep(self, evicted: int, active: int):
        """Record the result of a retention sweep."""
        if evicted:
            self.killmails_evicted_total.inc(evicted)
        self.killmails_active.set(active)
