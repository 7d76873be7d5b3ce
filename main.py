#!/usr/bin/env python3
"""
Key-Value Cluster Comparison Benchmark

Runs a fixed battery of workloads against two or more Redis-protocol
deployments (e.g. Garnet and Redis) one after the other and prints a
side-by-side throughput comparison.

Features:
- Standalone and cluster targets through redis-py
- String, batch, pipeline, hash, list, sorted-set, transaction, scan and pub/sub workloads
- YAML/JSON configuration files and environment variable defaults
- JSON export of results and optional OpenTelemetry metrics
"""

from cli import cli

if __name__ == '__main__':
    cli()
