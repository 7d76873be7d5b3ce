"""
Workload results and metrics export with OpenTelemetry support.
"""
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

from logger import get_logger


@dataclass(frozen=True)
class WorkloadResult:
    """Outcome of one workload run against one target."""
    name: str
    operation_count: int
    duration_ms: float
    details: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        if self.operation_count < 0:
            raise ValueError(f"operation_count must be >= 0, got {self.operation_count}")
        if self.duration_ms < 0:
            raise ValueError(f"duration_ms must be >= 0, got {self.duration_ms}")

    @property
    def throughput(self) -> float:
        """Operations per second, 0 when no time elapsed."""
        if self.duration_ms <= 0:
            return 0.0
        return self.operation_count / (self.duration_ms / 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'operation_count': self.operation_count,
            'duration_ms': round(self.duration_ms, 3),
            'ops_per_second': round(self.throughput, 2),
            'details': dict(self.details),
        }


class MetricsCollector:
    """Exports workload results to OpenTelemetry."""

    def __init__(self, otel_endpoint: Optional[str] = None,
                 service_name: str = "kv-cluster-bench", service_version: str = "1.0.0",
                 otel_export_interval_ms: int = 5000, run_id: str = None, version: str = None,
                 metric_readers: Optional[List[MetricReader]] = None):
        self.logger = get_logger()
        self.otel_endpoint = otel_endpoint
        self.service_name = service_name
        self.service_version = service_version
        self.otel_export_interval_ms = otel_export_interval_ms
        self.run_id = run_id if run_id and run_id.strip() else str(uuid.uuid4())
        self.version = version or "unknown"

        self._setup_opentelemetry(list(metric_readers or []))

    def _setup_opentelemetry(self, metric_readers: List[MetricReader]):
        """Setup the meter provider and instruments."""
        try:
            resource = Resource.create({
                "service.name": self.service_name,
                "service.version": self.service_version,
            })

            if self.otel_endpoint:
                metric_exporter = OTLPMetricExporter(
                    endpoint=self.otel_endpoint,
                    insecure=True
                )
                metric_readers.append(PeriodicExportingMetricReader(
                    exporter=metric_exporter,
                    export_interval_millis=self.otel_export_interval_ms
                ))

            self.meter_provider = MeterProvider(
                resource=resource,
                metric_readers=metric_readers
            )
            self.meter = self.meter_provider.get_meter(self.service_name, self.service_version)

            self.otel_operations_counter = self.meter.create_counter(
                name="kv_bench_operations_total",
                description="Operations completed by benchmark workloads",
                unit="1"
            )

            self.otel_workload_duration = self.meter.create_histogram(
                name="kv_bench_workload_duration",
                description="Wall-clock duration of benchmark workloads in milliseconds",
                unit="ms"
            )

            self.otel_workload_errors_counter = self.meter.create_counter(
                name="kv_bench_workload_errors_total",
                description="Benchmark workloads aborted by an error",
                unit="1"
            )

            self.otel_client_init_duration = self.meter.create_histogram(
                name="kv_bench_client_init_duration",
                description="Duration of client init (connect)",
                unit="ms"
            )

            if self.otel_endpoint:
                self.logger.info(f"OpenTelemetry setup completed with endpoint: {self.otel_endpoint}")

        except Exception as e:
            self.logger.error(f"Failed to setup OpenTelemetry: {e}")
            raise

    def _labels(self, target: str, **extra) -> Dict[str, str]:
        labels = {
            "target": target,
            "run_id": self.run_id,
            "version": self.version,
        }
        labels.update(extra)
        return labels

    def record_workload_result(self, target: str, result: WorkloadResult):
        """Record a completed workload."""
        labels = self._labels(target, workload=result.name)
        self.otel_operations_counter.add(result.operation_count, labels)
        self.otel_workload_duration.record(result.duration_ms, labels)

    def record_workload_error(self, target: str, workload: str, error_type: str):
        """Record a workload that raised."""
        self.otel_workload_errors_counter.add(1, self._labels(target, workload=workload, error_type=error_type))

    def record_client_init_duration(self, duration: float, target: str, client: str = "cluster-sync"):
        """Record the duration of a client initialization (seconds)."""
        duration_ms = duration * 1000
        self.logger.debug(f"{target}: client init took {duration_ms:.1f}ms")
        self.otel_client_init_duration.record(duration_ms, self._labels(target, client=client))

    def shutdown(self):
        """Flush pending exports."""
        try:
            self.meter_provider.shutdown()
        except Exception as e:
            self.logger.warning(f"Error shutting down metrics provider: {e}")


# Global metrics collector instance
_metrics_collector = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


def setup_metrics(otel_endpoint: Optional[str] = None,
                  service_name: str = "kv-cluster-bench", service_version: str = "1.0.0",
                  otel_export_interval_ms: int = 5000, run_id: str = None, version: str = None,
                  metric_readers: Optional[List[MetricReader]] = None) -> MetricsCollector:
    """Setup the global metrics collector."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(
        otel_endpoint=otel_endpoint,
        service_name=service_name,
        service_version=service_version,
        otel_export_interval_ms=otel_export_interval_ms,
        run_id=run_id,
        version=version,
        metric_readers=metric_readers
    )
    return _metrics_collector
