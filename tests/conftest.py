"""Pytest configuration and shared fixtures."""

import fnmatch
import queue
import threading
from typing import Dict, List, Optional

import pytest
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from redis.exceptions import ConnectionError

from config import TargetConfig
from logger import setup_logging
from metrics import setup_metrics


class FakePipeline:
    """Collects SETs and applies them on execute()."""

    def __init__(self, client: "FakeClient", transaction: bool):
        self.client = client
        self.transaction = transaction
        self.commands: List[tuple] = []

    def set(self, key, value, **kwargs):
        self.commands.append((key, value))
        return self

    def execute(self):
        if self.client.fail_pipelines:
            raise ConnectionError("pipeline failed")
        self.client.executed_pipelines.append(self)
        replies = []
        for key, value in self.commands:
            self.client.store[key] = value
            replies.append(True)
        return replies


class FakePubSub:
    """Subscription fed by FakeClient.publish; ``deliver=False`` drops everything."""

    def __init__(self, client: "FakeClient"):
        self.client = client
        self.channels: List[str] = []
        self.inbox: "queue.Queue[dict]" = queue.Queue()
        self.closed = False

    def subscribe(self, channel):
        self.channels.append(channel)
        self.client.subscribers.append(self)
        self.inbox.put({"type": "subscribe", "channel": channel, "data": 1})

    def get_message(self, ignore_subscribe_messages=False, timeout=0.0):
        try:
            message = self.inbox.get(timeout=timeout) if timeout else self.inbox.get_nowait()
        except queue.Empty:
            return None
        if ignore_subscribe_messages and message["type"] != "message":
            return None
        return message

    def unsubscribe(self, channel):
        if channel in self.channels:
            self.channels.remove(channel)

    def close(self):
        self.closed = True
        if self in self.client.subscribers:
            self.client.subscribers.remove(self)


class FakeClient:
    """In-memory stand-in for redis_client.RedisClient."""

    def __init__(self, config: Optional[TargetConfig] = None, deliver: bool = True):
        self.config = config or TargetConfig(name="Fake", endpoints=["127.0.0.1:7000"])
        self.store: Dict[str, object] = {}
        self.expiry: Dict[str, int] = {}
        self.calls: Dict[str, int] = {}
        self.executed_pipelines: List[FakePipeline] = []
        self.subscribers: List[FakePubSub] = []
        self.deliver = deliver
        self.fail_pipelines = False
        self.fail_on: Dict[str, int] = {}
        self.connected = False
        self.close_calls = 0
        self.scan_calls = 0
        self._lock = threading.Lock()

    @property
    def name(self):
        return self.config.name

    def _track(self, command):
        self.calls[command] = self.calls.get(command, 0) + 1
        if self.fail_on.get(command) == self.calls[command]:
            raise ConnectionError(f"{command} failed on call {self.calls[command]}")

    def connect(self):
        self.connected = True
        return True

    def close(self):
        self.close_calls += 1
        self.connected = False

    def server_versions(self):
        return {self.config.endpoints[0]: "7.2.0"}

    def set(self, key, value, **kwargs):
        self._track("set")
        self.store[key] = value
        if "ex" in kwargs:
            self.expiry[key] = kwargs["ex"]
        return True

    def get(self, key):
        self._track("get")
        return self.store.get(key)

    def delete(self, *keys):
        self._track("delete")
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    def hset(self, key, mapping):
        self._track("hset")
        self.store.setdefault(key, {}).update(mapping)
        return len(mapping)

    def rpush(self, key, *values):
        self._track("rpush")
        self.store.setdefault(key, []).extend(values)
        return len(self.store[key])

    def zadd(self, key, mapping):
        self._track("zadd")
        self.store.setdefault(key, {}).update(mapping)
        return len(mapping)

    def pipeline(self, transaction=True):
        return FakePipeline(self, transaction)

    def pubsub(self):
        return FakePubSub(self)

    def publish(self, channel, message):
        self._track("publish")
        receivers = 0
        if self.deliver:
            for subscriber in list(self.subscribers):
                if channel in subscriber.channels:
                    subscriber.inbox.put({"type": "message", "channel": channel, "data": message})
                    receivers += 1
        return receivers

    def scan_keys(self, pattern, count=100):
        self.scan_calls += 1
        for key in list(self.store):
            if fnmatch.fnmatchcase(key, pattern):
                yield key


@pytest.fixture(autouse=True)
def quiet_logging():
    """Route the benchmark logger at WARNING so test output stays readable."""
    setup_logging("WARNING")


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    """Metrics collector backed by an in-memory reader."""
    reader = InMemoryMetricReader()
    setup_metrics(metric_readers=[reader], run_id="test-run", version="test")
    return reader


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def target_config() -> TargetConfig:
    return TargetConfig(name="Garnet", endpoints=["127.0.0.1:7002"], cluster_mode=False)
