"""Unit tests for the target client handle."""

from unittest.mock import MagicMock, patch

import pytest
from redis.backoff import NoBackoff
from redis.exceptions import ConnectionError, RedisError

from config import TargetConfig
from errors import BenchmarkError
from redis_client import RedisClient


class TestRedisClient:
    """Tests for RedisClient."""

    def test_standalone_connect(self, target_config):
        with patch("redis_client.redis.Redis") as redis_cls:
            client = RedisClient(target_config)
            assert client.connect() is True

        kwargs = redis_cls.call_args.kwargs
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 7002
        assert kwargs["decode_responses"] is True
        redis_cls.return_value.ping.assert_called_once()
        assert client.is_connected

    def test_cluster_connect_uses_every_endpoint(self):
        config = TargetConfig(name="Redis", endpoints=["127.0.0.1:7001", "127.0.0.2:7001", "127.0.0.3:7001"])
        with patch("redis_client.RedisCluster") as cluster_cls:
            RedisClient(config).connect()

        startup_nodes = cluster_cls.call_args.kwargs["startup_nodes"]
        assert [(n.host, n.port) for n in startup_nodes] == [
            ("127.0.0.1", 7001), ("127.0.0.2", 7001), ("127.0.0.3", 7001),
        ]

    def test_no_client_retries(self, target_config):
        client = RedisClient(target_config)
        retry = client._pool_kwargs["retry"]
        assert isinstance(retry._backoff, NoBackoff)
        assert retry._retries == 0

    def test_ssl_options(self):
        config = TargetConfig(ssl=True, ssl_cert_reqs="none", ssl_ca_certs="/ca.pem")
        kwargs = RedisClient(config)._pool_kwargs
        assert kwargs["ssl"] is True
        assert kwargs["ssl_cert_reqs"] == "none"
        assert kwargs["ssl_ca_certs"] == "/ca.pem"

    def test_connect_failure(self, target_config):
        with patch("redis_client.redis.Redis") as redis_cls:
            redis_cls.return_value.ping.side_effect = ConnectionError("refused")
            client = RedisClient(target_config)
            with pytest.raises(ConnectionError):
                client.connect()

        assert not client.is_connected
        redis_cls.return_value.close.assert_called_once()

    def test_unconnected_client_fails_on_use(self, target_config):
        client = RedisClient(target_config)
        with pytest.raises(ConnectionError, match="not connected"):
            client.set("k", "v")

    def test_close_is_idempotent(self, target_config):
        with patch("redis_client.redis.Redis") as redis_cls:
            client = RedisClient(target_config)
            client.connect()
        client.close()
        client.close()
        redis_cls.return_value.close.assert_called_once()

    def test_scan_skips_failing_node(self, target_config):
        good = MagicMock()
        good.scan_iter.return_value = iter(["{test}:a", "{test}:b"])
        bad = MagicMock()
        bad.scan_iter.side_effect = RedisError("node down")
        later = MagicMock()
        later.scan_iter.return_value = iter(["{test}:c"])

        client = RedisClient(target_config)
        client.nodes = lambda: [("a:1", good), ("b:1", bad), ("c:1", later)]

        assert list(client.scan_keys("{test}:*")) == ["{test}:a", "{test}:b", "{test}:c"]
        good.scan_iter.assert_called_once_with(match="{test}:*", count=100)

    def test_standalone_nodes(self, target_config):
        with patch("redis_client.redis.Redis") as redis_cls:
            client = RedisClient(target_config)
            client.connect()
        assert client.nodes() == [("127.0.0.1:7002", redis_cls.return_value)]

    def test_server_versions_requires_admin(self):
        client = RedisClient(TargetConfig(allow_admin=False))
        with pytest.raises(BenchmarkError, match="Admin commands are disabled"):
            client.server_versions()

    def test_server_versions(self, target_config):
        with patch("redis_client.redis.Redis") as redis_cls:
            redis_cls.return_value.info.return_value = {"redis_version": "7.2.4"}
            client = RedisClient(target_config)
            client.connect()

        assert client.server_versions() == {"127.0.0.1:7002": "7.2.4"}
        redis_cls.return_value.info.assert_called_with("server")

    def test_commands_are_forwarded(self, target_config):
        with patch("redis_client.redis.Redis") as redis_cls:
            client = RedisClient(target_config)
            client.connect()
        raw = redis_cls.return_value

        client.set("k", "v", ex=300)
        client.hset("h", {"f": "v"})
        client.zadd("z", {"m": 1})
        client.pipeline(transaction=False)

        raw.set.assert_called_with("k", "v", ex=300)
        raw.hset.assert_called_with("h", mapping={"f": "v"})
        raw.zadd.assert_called_with("z", {"m": 1})
        raw.pipeline.assert_called_with(transaction=False)
