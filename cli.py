"""
Command-line interface for the cluster comparison benchmark.
"""
import click
import sys
import os
import uuid
from typing import List, Optional, Tuple
from dotenv import load_dotenv

from config import (
    BenchmarkConfig, TargetConfig, default_targets, get_redis_version,
    load_config_from_file, parse_duration_ms, parse_endpoint, save_config_to_file,
)
from benchmark_runner import BenchmarkRunner
from workloads import WorkloadFactory

# Load environment variables from .env file
load_dotenv()


def get_env_or_default(env_var: str, default_value, value_type=str):
    """Get environment variable with type conversion and default fallback."""
    env_value = os.getenv(env_var)
    if env_value is None:
        return default_value

    try:
        if value_type == bool:
            return env_value.lower() in ('true', '1', 'yes', 'on')
        elif value_type == int:
            return int(env_value)
        elif value_type == float:
            return float(env_value)
        else:
            return env_value
    except (ValueError, TypeError):
        return default_value


def parse_target(spec: str) -> Tuple[str, List[str]]:
    """Parse ``NAME=host:port[,host:port...]``."""
    name, sep, endpoints = spec.partition('=')
    if not sep or not name.strip() or not endpoints.strip():
        raise click.BadParameter(f"Invalid target '{spec}', expected NAME=host:port[,host:port]")
    return name.strip(), [e.strip() for e in endpoints.split(',') if e.strip()]


def _env_targets() -> Optional[Tuple[str, ...]]:
    """Targets from BENCH_TARGETS, separated by semicolons."""
    value = get_env_or_default('BENCH_TARGETS', None)
    if not value:
        return None
    return tuple(t.strip() for t in value.split(';') if t.strip())


@click.group()
@click.version_option(version="1.0.0")
def cli():
    """Key-value cluster benchmark - compare throughput of Redis-protocol deployments side by side."""
    pass


@cli.command()
def list_workloads():
    """List the workload catalog in execution order."""
    click.echo("Workload catalog:")
    for index, name in enumerate(WorkloadFactory.list_workloads(), start=1):
        click.echo(f"  {index:>2}. {name}")


@cli.command()
# ============================================================================
# Target Connection Parameters
# ============================================================================
@click.option('--target', 'targets', multiple=True, default=_env_targets, help='Benchmark target as NAME=host:port[,host:port]; repeat per target (first one is the comparison base)')
@click.option('--standalone', is_flag=True, default=lambda: get_env_or_default('BENCH_STANDALONE', False, bool), help='Connect to standalone servers instead of clusters')
@click.option('--allow-admin/--no-allow-admin', default=lambda: get_env_or_default('BENCH_ALLOW_ADMIN', True, bool), help='Allow administrative commands (INFO)')
@click.option('--abort-on-connect-fail', is_flag=True, default=lambda: get_env_or_default('BENCH_ABORT_ON_CONNECT_FAIL', False, bool), help='Abort the run if a target cannot be reached')
@click.option('--username', default=lambda: get_env_or_default('REDIS_USERNAME', None), help='ACL username')
@click.option('--password', default=lambda: get_env_or_default('REDIS_PASSWORD', None), help='Password')
@click.option('--ssl', is_flag=True, default=lambda: get_env_or_default('REDIS_SSL', False, bool), help='Use SSL/TLS connection')
@click.option('--ssl-keyfile', default=lambda: get_env_or_default('REDIS_SSL_KEYFILE', None), help='Path to client private key file')
@click.option('--ssl-certfile', default=lambda: get_env_or_default('REDIS_SSL_CERTFILE', None), help='Path to client certificate file')
@click.option('--ssl-cert-reqs', default=lambda: get_env_or_default('REDIS_SSL_CERT_REQS', 'required'), type=click.Choice(['none', 'optional', 'required']), help='SSL certificate requirements')
@click.option('--ssl-ca-certs', default=lambda: get_env_or_default('REDIS_SSL_CA_CERTS', None), help='Path to CA certificates file')
@click.option('--socket-timeout', type=float, default=lambda: get_env_or_default('REDIS_SOCKET_TIMEOUT', None, float), help='Socket timeout in seconds')
@click.option('--socket-connect-timeout', type=float, default=lambda: get_env_or_default('REDIS_SOCKET_CONNECT_TIMEOUT', None, float), help='Socket connect timeout in seconds')
@click.option('--max-connections', type=int, default=lambda: get_env_or_default('REDIS_MAX_CONNECTIONS', 50, int), help='Maximum connections per node')

# ============================================================================
# Benchmark Parameters
# ============================================================================
@click.option('--duration', default=lambda: get_env_or_default('BENCH_DURATION', '3000'), help='Time budget per workload in milliseconds, or ISO 8601 (PT3S)')
@click.option('--key-namespace', default=lambda: get_env_or_default('BENCH_KEY_NAMESPACE', 'test'), help='Hash tag used for every test key')
@click.option('--workloads', default=lambda: get_env_or_default('BENCH_WORKLOADS', None), help='Comma-separated subset of workloads to run (see list-workloads)')
@click.option('--no-cleanup', is_flag=True, default=False, help='Keep test keys after the run')

# ============================================================================
# Logging & Output Parameters
# ============================================================================
@click.option('--log-level', default=lambda: get_env_or_default('LOG_LEVEL', 'INFO'), type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']), help='Logging level')
@click.option('--log-file', default=lambda: get_env_or_default('LOG_FILE', None), help='Log file path')
@click.option('--output-file', default=lambda: get_env_or_default('OUTPUT_FILE', None), help='Write all results and the comparison to this JSON file')

# ============================================================================
# OpenTelemetry Parameters
# ============================================================================
@click.option('--otel-endpoint', default=lambda: get_env_or_default('OTEL_EXPORTER_OTLP_ENDPOINT', None), help='OpenTelemetry OTLP endpoint')
@click.option('--otel-service-name', default=lambda: get_env_or_default('OTEL_SERVICE_NAME', 'kv-cluster-bench'), help='OpenTelemetry service name')
@click.option('--otel-export-interval', type=int, default=lambda: get_env_or_default('OTEL_EXPORT_INTERVAL', 5000, int), help='OpenTelemetry export interval in milliseconds')
@click.option('--run-id', default=lambda: get_env_or_default('RUN_ID', None), help='Unique run identifier (auto-generated if not provided)')
@click.option('--version', default=lambda: get_env_or_default('VERSION', None), help='Version identifier (defaults to redis-py package version)')

# ============================================================================
# Configuration File Parameters
# ============================================================================
@click.option('--config-file', default=lambda: get_env_or_default('CONFIG_FILE', None), help='Load configuration from YAML/JSON file')
@click.option('--save-config', help='Save current configuration to file')
def run(**kwargs):
    """Benchmark every target and print the comparison."""

    try:
        if kwargs['config_file']:
            config = load_config_from_file(kwargs['config_file'])
            click.echo(f"Loaded configuration from {kwargs['config_file']}")
        else:
            config = _build_config_from_args(kwargs)

        if kwargs['save_config']:
            save_config_to_file(config, kwargs['save_config'])
            click.echo(f"Configuration saved to {kwargs['save_config']}")
            return

        _validate_config(config)

        runner = BenchmarkRunner(config)
        runner.run()

    except KeyboardInterrupt:
        click.echo("\nBenchmark interrupted by user")
        sys.exit(130)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--target', 'targets', multiple=True, default=_env_targets, help='Target as NAME=host:port[,host:port]; repeat per target')
@click.option('--standalone', is_flag=True, default=lambda: get_env_or_default('BENCH_STANDALONE', False, bool), help='Connect to standalone servers instead of clusters')
@click.option('--password', default=lambda: get_env_or_default('REDIS_PASSWORD', None), help='Password')
def test_connection(targets, standalone, password):
    """Connect to each target and report server versions."""
    from redis_client import RedisClient

    configs = _build_targets(targets, cluster_mode=not standalone, password=password)
    failed = False
    for target in configs:
        client = RedisClient(target)
        try:
            client.connect()
            click.echo(f"✓ {target.name}: connected ({', '.join(target.endpoints)})")
            for node, version in client.server_versions().items():
                click.echo(f"    {node}: version {version}")
        except Exception as e:
            click.echo(f"✗ {target.name}: connection failed: {e}", err=True)
            failed = True
        finally:
            client.close()

    if failed:
        sys.exit(1)


def _build_targets(specs, **target_kwargs) -> List[TargetConfig]:
    """TargetConfig per ``NAME=endpoints`` spec, or the default pair."""
    if not specs:
        targets = default_targets()
        for target in targets:
            for key, value in target_kwargs.items():
                setattr(target, key, value)
        return targets

    targets = []
    for spec in specs:
        name, endpoints = parse_target(spec)
        targets.append(TargetConfig(name=name, endpoints=endpoints, **target_kwargs))
    return targets


def _build_config_from_args(kwargs) -> BenchmarkConfig:
    """Build BenchmarkConfig from command line arguments."""

    targets = _build_targets(
        kwargs['targets'],
        cluster_mode=not kwargs['standalone'],
        allow_admin=kwargs['allow_admin'],
        abort_on_connect_fail=kwargs['abort_on_connect_fail'],
        username=kwargs['username'],
        password=kwargs['password'],
        ssl=kwargs['ssl'],
        ssl_keyfile=kwargs['ssl_keyfile'],
        ssl_certfile=kwargs['ssl_certfile'],
        ssl_cert_reqs=kwargs['ssl_cert_reqs'],
        ssl_ca_certs=kwargs['ssl_ca_certs'],
        socket_timeout=kwargs['socket_timeout'],
        socket_connect_timeout=kwargs['socket_connect_timeout'],
        max_connections=kwargs['max_connections'],
    )

    workloads = None
    if kwargs['workloads']:
        workloads = [name.strip() for name in kwargs['workloads'].split(',') if name.strip()]

    return BenchmarkConfig(
        targets=targets,
        duration_ms=parse_duration_ms(kwargs['duration']),
        key_namespace=kwargs['key_namespace'],
        workloads=workloads,
        cleanup=not kwargs['no_cleanup'],
        log_level=kwargs['log_level'],
        log_file=kwargs['log_file'],
        output_file=kwargs['output_file'],
        otel_endpoint=kwargs['otel_endpoint'],
        otel_service_name=kwargs['otel_service_name'],
        otel_export_interval_ms=kwargs['otel_export_interval'],
        run_id=kwargs['run_id'] or str(uuid.uuid4()),
        version=kwargs['version'] or get_redis_version(),
    )


def _validate_config(config: BenchmarkConfig):
    """Validate configuration parameters."""
    if len(config.targets) < 2:
        raise ValueError("At least two targets are required for a comparison")

    names = [target.name for target in config.targets]
    if len(set(names)) != len(names):
        raise ValueError(f"Target names must be unique: {', '.join(names)}")

    for target in config.targets:
        if not target.endpoints:
            raise ValueError(f"Target {target.name} has no endpoints")
        for endpoint in target.endpoints:
            parse_endpoint(endpoint)

    if config.duration_ms <= 0:
        raise ValueError("Duration must be greater than 0")

    if config.workloads is not None:
        unknown = set(config.workloads) - set(WorkloadFactory.list_workloads())
        if unknown:
            raise ValueError(f"Unknown workloads: {', '.join(sorted(unknown))}")
        if not config.workloads:
            raise ValueError("Workload selection is empty")


if __name__ == '__main__':
    cli()
