"""
Client handle for one benchmark target, standalone or cluster.
"""
import time
from typing import Optional, List, Dict, Any, Iterator, Tuple, Union
import redis
from redis.cluster import RedisCluster, ClusterNode
from redis.retry import Retry
from redis.backoff import NoBackoff
from redis.exceptions import RedisError

from config import TargetConfig
from errors import BenchmarkError, ScanError
from logger import get_logger, log_connection_event
from metrics import get_metrics_collector


class RedisClient:
    """
    Owns the redis-py connection for a target.

    Commands are forwarded to redis-py without per-call instrumentation so the
    measured throughput is the client library's own.
    """

    def __init__(self, config: TargetConfig):
        self.config = config
        self.logger = get_logger()
        self.metrics = get_metrics_collector()

        self._client: Optional[Union[redis.Redis, RedisCluster]] = None
        self._pool_kwargs = self._build_pool_kwargs()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> Union[redis.Redis, RedisCluster]:
        """The underlying redis-py client; raises when the target never connected."""
        if self._client is None:
            raise redis.exceptions.ConnectionError(f"{self.name} is not connected")
        return self._client

    def _build_pool_kwargs(self) -> Dict[str, Any]:
        """Build connection keyword arguments."""
        kwargs = {
            'socket_timeout': self.config.socket_timeout,
            'socket_connect_timeout': self.config.socket_connect_timeout,
            'max_connections': self.config.max_connections,
            'decode_responses': True,
            # Retrying would skew the measured throughput
            'retry': Retry(NoBackoff(), 0),
        }

        if self.config.username:
            kwargs['username'] = self.config.username
        if self.config.password:
            kwargs['password'] = self.config.password

        if self.config.ssl:
            kwargs.update({
                'ssl': True,
                'ssl_cert_reqs': self.config.ssl_cert_reqs,
                'ssl_ca_certs': self.config.ssl_ca_certs,
                'ssl_certfile': self.config.ssl_certfile,
                'ssl_keyfile': self.config.ssl_keyfile,
            })

        return kwargs

    def connect(self) -> bool:
        """Establish the connection and verify it with PING."""
        start_time = time.time()

        try:
            if self.config.cluster_mode:
                self._connect_cluster()
            else:
                self._connect_standalone()

            self._client.ping()

            connection_duration = time.time() - start_time
            self.metrics.record_client_init_duration(
                connection_duration, self.name,
                client="cluster-sync" if self.config.cluster_mode else "standalone-sync"
            )
            log_connection_event("ESTABLISHED", {
                "target": self.name,
                "endpoints": self.config.endpoints,
                "duration_s": round(connection_duration, 3),
            })
            return True

        except Exception as e:
            log_connection_event("FAILED", {
                "target": self.name,
                "endpoints": self.config.endpoints,
                "error": str(e),
            })
            self.close()
            raise

    def _connect_standalone(self):
        """Connect to a standalone server (first endpoint)."""
        node = self.config.startup_nodes()[0]
        self._client = redis.Redis(
            host=node["host"],
            port=node["port"],
            **self._pool_kwargs
        )

    def _connect_cluster(self):
        """Connect to a cluster through all configured endpoints."""
        startup_nodes = [ClusterNode(node["host"], node["port"]) for node in self.config.startup_nodes()]
        self._client = RedisCluster(
            startup_nodes=startup_nodes,
            require_full_coverage=False,
            **self._pool_kwargs
        )

    def close(self):
        """Close the connection. Safe to call repeatedly."""
        if self._client:
            try:
                self._client.close()
            except Exception as e:
                self.logger.warning(f"{self.name}: error closing connection: {e}")
            finally:
                self._client = None

    def nodes(self) -> List[Tuple[str, redis.Redis]]:
        """Every reachable server node as (name, per-node client)."""
        client = self.client
        if isinstance(client, RedisCluster):
            return [(node.name, node.redis_connection) for node in client.get_nodes()
                    if node.redis_connection is not None]
        endpoint = self.config.endpoints[0]
        return [(endpoint, client)]

    def scan_keys(self, pattern: str, count: int = 100) -> Iterator[str]:
        """
        Incrementally SCAN every node for keys matching ``pattern``.

        A node that fails is logged and skipped; the scan continues on the rest.
        """
        for node_name, connection in self.nodes():
            try:
                for key in connection.scan_iter(match=pattern, count=count):
                    yield key
            except RedisError as e:
                self.logger.warning(str(ScanError(node_name, e)))

    def server_versions(self) -> Dict[str, str]:
        """Server version per node. Requires allow_admin."""
        if not self.config.allow_admin:
            raise BenchmarkError(f"Admin commands are disabled for {self.name}")

        versions = {}
        for node_name, connection in self.nodes():
            info = connection.info("server")
            versions[node_name] = info.get("redis_version", "unknown")
        return versions

    # Commands used by the workloads
    def set(self, key: str, value: str, **kwargs):
        return self.client.set(key, value, **kwargs)

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def delete(self, *keys: str) -> int:
        return self.client.delete(*keys)

    def hset(self, key: str, mapping: Dict[str, str]) -> int:
        return self.client.hset(key, mapping=mapping)

    def rpush(self, key: str, *values: str) -> int:
        return self.client.rpush(key, *values)

    def zadd(self, key: str, mapping: Dict[str, float]) -> int:
        return self.client.zadd(key, mapping)

    def publish(self, channel: str, message: str) -> int:
        return self.client.publish(channel, message)

    def pubsub(self):
        """Get a pubsub instance."""
        return self.client.pubsub()

    def pipeline(self, transaction: bool = True):
        """Get a pipeline; ``transaction=True`` wraps it in MULTI/EXEC."""
        return self.client.pipeline(transaction=transaction)

    def __str__(self) -> str:
        mode = "cluster" if self.config.cluster_mode else "standalone"
        return f"RedisClient({self.name}, {mode}, {','.join(self.config.endpoints)})"
