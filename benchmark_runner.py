"""
Benchmark execution: one session per target, workloads run sequentially.
"""
from typing import Callable, List, Optional

from redis.exceptions import RedisError

from config import BenchmarkConfig, TargetConfig, get_redis_version
from errors import ClusterConnectionError, CleanupError, WorkloadError
from logger import get_logger, setup_logging, log_error_with_traceback
from metrics import MetricsCollector, WorkloadResult, setup_metrics
from redis_client import RedisClient
from report import ComparisonReport, compare, export_report_to_json, print_report
from workloads import BaseWorkload, Stopwatch, WorkloadFactory


class ClusterSession:
    """A benchmark target: its configuration, its connection and its results."""

    CLEANUP_BATCH_SIZE = 500

    def __init__(self, config: TargetConfig, client_factory: Callable[[TargetConfig], RedisClient] = RedisClient):
        self.config = config
        self.name = config.name
        self.logger = get_logger()
        self.client = client_factory(config)
        self.results: List[WorkloadResult] = []
        self.error: Optional[WorkloadError] = None

    def open(self) -> bool:
        """
        Connect to the target.

        With ``abort_on_connect_fail`` an unreachable target raises
        ClusterConnectionError; otherwise the session carries on and its
        workloads fail on first use.
        """
        try:
            self.client.connect()
        except Exception as e:
            if self.config.abort_on_connect_fail:
                raise ClusterConnectionError(self.name, e) from e
            self.logger.warning(f"{self.name}: unreachable, continuing without a connection ({e})")
            return False

        self.logger.info(f"{self.name} cluster connected.")

        if self.config.allow_admin:
            try:
                for node, version in self.client.server_versions().items():
                    self.logger.info(f"{self.name}: {node} reports version {version}")
            except RedisError as e:
                self.logger.warning(f"{self.name}: could not query server info: {e}")
        return True

    def close(self):
        """Release the connection. Idempotent."""
        self.client.close()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def cleanup_keys(self, key_namespace: str) -> int:
        """
        Delete this session's test keys. Best effort: failures are logged.

        Returns the number of keys deleted.
        """
        patterns = [f"{{{key_namespace}}}:*", f"{{{key_namespace}:*}}:*"]
        deleted = 0
        try:
            for pattern in patterns:
                batch = []
                for key in self.client.scan_keys(pattern):
                    batch.append(key)
                    if len(batch) >= self.CLEANUP_BATCH_SIZE:
                        deleted += self.client.delete(*batch)
                        batch = []
                if batch:
                    deleted += self.client.delete(*batch)
        except Exception as e:
            self.logger.warning(str(CleanupError(f"Error occurred during key cleanup on {self.name}: {e}")))
        else:
            self.logger.info(f"{self.name}: removed {deleted} test keys")
        return deleted


def run_timed(workload: BaseWorkload, session: ClusterSession, budget_ms: float) -> WorkloadResult:
    """
    Run ``workload`` once against ``session`` and record how long it took.

    The workload enforces its own budget; the measured duration covers the
    whole call. Failures are raised as WorkloadError.
    """
    session.logger.info(f"Running: {workload.name}...")
    stopwatch = Stopwatch()
    try:
        count = workload.run(session.client, budget_ms)
    except Exception as e:
        raise WorkloadError(workload.name, session.name, e) from e

    result = WorkloadResult(
        name=workload.name,
        operation_count=count,
        duration_ms=stopwatch.elapsed_ms(),
        details=dict(workload.details),
    )
    session.results.append(result)
    return result


class BenchmarkRunner:
    """Runs the workload catalog against every target and reports the comparison."""

    def __init__(self, config: BenchmarkConfig,
                 session_factory: Callable[[TargetConfig], ClusterSession] = ClusterSession):
        self.config = config
        self.logger = setup_logging(config.log_level, config.log_file).get_logger()
        self.metrics: MetricsCollector = setup_metrics(
            otel_endpoint=config.otel_endpoint,
            service_name=config.otel_service_name,
            service_version=config.otel_service_version,
            otel_export_interval_ms=config.otel_export_interval_ms,
            run_id=config.run_id,
            version=config.version or get_redis_version(),
        )
        self.sessions: List[ClusterSession] = [session_factory(target) for target in config.targets]

    def run(self) -> ComparisonReport:
        """Connect, benchmark every target in turn, print the comparison. Always closes sessions."""
        self.logger.info(f"Run ID: {self.metrics.run_id}")
        self.logger.info(
            f"Targets: {', '.join(s.name for s in self.sessions)} | "
            f"budget per workload: {self.config.duration_ms}ms"
        )

        try:
            for session in self.sessions:
                session.open()

            for session in self.sessions:
                self.run_session(session)

            report = compare(self.sessions)
            print_report(report)

            if self.config.output_file:
                export_report_to_json(report, self.sessions, self.config.output_file, run_id=self.metrics.run_id)
                self.logger.info(f"Results exported to {self.config.output_file}")
            return report

        finally:
            self.close()

    def run_session(self, session: ClusterSession):
        """Run the catalog against one session; a failing workload ends that session's run."""
        self.logger.info(f"{session.name} cluster performance test starting...")
        catalog = WorkloadFactory.create_catalog(self.config.key_namespace, self.config.workloads)

        try:
            for workload in catalog:
                result = run_timed(workload, session, self.config.duration_ms)
                self.metrics.record_workload_result(session.name, result)
                self.logger.info(
                    f"{session.name} | {result.name}: {result.operation_count:,} ops "
                    f"in {result.duration_ms:.0f}ms ({result.throughput:,.0f} ops/sec)"
                )
        except WorkloadError as e:
            session.error = e
            self.metrics.record_workload_error(session.name, e.workload, type(e.cause).__name__)
            log_error_with_traceback(f"Skipping remaining workloads for {session.name}", e)
        finally:
            if self.config.cleanup:
                session.cleanup_keys(self.config.key_namespace)

    def close(self):
        """Close every session and flush metrics."""
        for session in self.sessions:
            try:
                session.close()
            except Exception as e:
                self.logger.warning(f"Error closing {session.name}: {e}")
        self.metrics.shutdown()
