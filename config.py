"""
Configuration management for the cluster benchmark.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any, Tuple
import yaml
import json
import importlib.metadata
import re


DEFAULT_DURATION_MS = 3000


def get_redis_version() -> str:
    """Get the version of the redis-py package."""
    try:
        return importlib.metadata.version("redis")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def parse_duration_ms(duration_str: str) -> int:
    """
    Parse a workload time budget to milliseconds.

    Plain integers are milliseconds. ISO 8601 durations (PT3S, PT1M, PT1M30S)
    are also accepted.

    Examples:
        parse_duration_ms("3000") -> 3000
        parse_duration_ms("PT3S") -> 3000
        parse_duration_ms("PT1M30S") -> 90000
    """
    if not duration_str:
        return 0

    duration_str = duration_str.strip()
    if duration_str.lstrip("-").isdigit():
        return int(duration_str)

    if not duration_str.startswith("PT"):
        raise ValueError(f"Invalid duration format: {duration_str}")

    match = re.fullmatch(r"(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?", duration_str[2:])
    if not match or not any(match.groups()):
        raise ValueError(f"Invalid duration format: {duration_str}")

    hours, minutes, seconds = (int(g) if g else 0 for g in match.groups())
    return (hours * 3600 + minutes * 60 + seconds) * 1000


def parse_endpoint(endpoint: str) -> Tuple[str, int]:
    """Split a ``host:port`` endpoint."""
    host, sep, port = endpoint.strip().rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"Invalid endpoint '{endpoint}', expected host:port")
    return host, int(port)


@dataclass
class TargetConfig:
    """Connection configuration for one benchmark target."""

    name: str = "Redis"
    endpoints: List[str] = field(default_factory=lambda: ["localhost:6379"])
    cluster_mode: bool = True

    # Allow administrative commands (INFO) against the target
    allow_admin: bool = True
    # Fail the whole run if the target cannot be reached at startup
    abort_on_connect_fail: bool = False

    username: Optional[str] = None
    password: Optional[str] = None

    # TLS configuration
    ssl: bool = False
    ssl_keyfile: Optional[str] = None
    ssl_certfile: Optional[str] = None
    ssl_cert_reqs: str = "required"  # "required", "optional" or "none"
    ssl_ca_certs: Optional[str] = None

    # Connection settings
    socket_timeout: Optional[float] = None
    socket_connect_timeout: Optional[float] = None
    max_connections: int = 50

    def startup_nodes(self) -> List[Dict[str, Any]]:
        """Endpoints as host/port dictionaries."""
        nodes = []
        for endpoint in self.endpoints:
            host, port = parse_endpoint(endpoint)
            nodes.append({"host": host, "port": port})
        return nodes


def default_targets() -> List[TargetConfig]:
    """Garnet and Redis clusters side by side on one host."""
    return [
        TargetConfig(name="Garnet", endpoints=["localhost:7002"]),
        TargetConfig(name="Redis", endpoints=["localhost:7001"]),
    ]


@dataclass
class BenchmarkConfig:
    """Main benchmark configuration"""

    targets: List[TargetConfig] = field(default_factory=default_targets)

    # Time budget for each workload
    duration_ms: int = DEFAULT_DURATION_MS
    # Hash tag shared by every test key, e.g. "test" -> "{test}:single:1"
    key_namespace: str = "test"
    # Subset of the workload catalog to run (None = all, in catalog order)
    workloads: Optional[List[str]] = None
    # Delete test keys from each target after its workloads
    cleanup: bool = True

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Output
    output_file: Optional[str] = None

    # OpenTelemetry configuration
    otel_endpoint: Optional[str] = None
    otel_service_name: str = "kv-cluster-bench"
    otel_service_version: str = "1.0.0"
    otel_export_interval_ms: int = 5000

    run_id: Optional[str] = None
    version: Optional[str] = None  # redis-py version unless overridden


def load_config_from_file(file_path: str) -> BenchmarkConfig:
    """Load configuration from YAML or JSON file."""
    with open(file_path, "r") as f:
        if file_path.endswith(".yaml") or file_path.endswith(".yml"):
            data = yaml.safe_load(f) or {}
        else:
            data = json.load(f)

    # Convert nested dictionaries to dataclass instances
    if "targets" in data:
        data["targets"] = [TargetConfig(**target) for target in data["targets"]]

    if "duration_ms" in data and isinstance(data["duration_ms"], str):
        data["duration_ms"] = parse_duration_ms(data["duration_ms"])

    return BenchmarkConfig(**data)


def save_config_to_file(config: BenchmarkConfig, file_path: str):
    """Save configuration to YAML file."""
    config_dict = asdict(config)

    with open(file_path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, indent=2, sort_keys=False)
