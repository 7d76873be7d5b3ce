"""
Exception types raised by the benchmark harness.
"""
from typing import Optional


class BenchmarkError(Exception):
    """Base class for benchmark harness errors."""


class ClusterConnectionError(BenchmarkError, ConnectionError):
    """A target could not be reached while fail-fast is enabled."""

    def __init__(self, target: str, cause: Optional[BaseException] = None):
        self.target = target
        self.cause = cause
        message = f"Cannot connect to {target}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class WorkloadError(BenchmarkError):
    """A workload failed; the remaining workloads for that target are skipped."""

    def __init__(self, workload: str, target: str, cause: BaseException):
        self.workload = workload
        self.target = target
        self.cause = cause
        super().__init__(f"{workload} failed on {target}: {type(cause).__name__} - {cause}")


class ScanError(BenchmarkError):
    """Key enumeration failed on a single server node."""

    def __init__(self, node: str, cause: BaseException):
        self.node = node
        self.cause = cause
        super().__init__(f"Error scanning keys on {node}: {cause}")


class CleanupError(BenchmarkError):
    """Best-effort deletion of test keys failed."""


class MissingResultError(BenchmarkError, LookupError):
    """A target has no result for the requested workload."""

    def __init__(self, target: str, workload: str):
        self.target = target
        self.workload = workload
        super().__init__(f"No result for '{workload}' on {target}")
