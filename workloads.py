"""
Benchmark workloads: one class per access pattern, run in catalog order.
"""
import json
import queue
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from redis.exceptions import ConnectionError, RedisError

from logger import get_logger
from redis_client import RedisClient


class Stopwatch:
    """Elapsed wall-clock time in milliseconds."""

    def __init__(self):
        self._start = time.perf_counter()

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000


def now_ms() -> float:
    return time.time() * 1000


class BaseWorkload(ABC):
    """A named access pattern run against one client for a time budget."""

    name: str = ""

    def __init__(self, key_namespace: str = "test"):
        self.key_namespace = key_namespace
        self.logger = get_logger()
        # Informational figures from the last run (not used for ranking)
        self.details: Dict[str, float] = {}

    def key(self, *parts: Any) -> str:
        """Key inside the shared hash tag, e.g. ``{test}:single:7``."""
        return ":".join([f"{{{self.key_namespace}}}"] + [str(p) for p in parts])

    def hash_tag(self, suffix: Any) -> str:
        """Per-group hash tag, e.g. ``{test:3}``."""
        return f"{{{self.key_namespace}:{suffix}}}"

    @abstractmethod
    def run(self, client: RedisClient, budget_ms: float) -> int:
        """Run until the budget is spent. Returns the number of completed operations."""
        pass


class LoopWorkload(BaseWorkload):
    """Issues one operation per iteration until the budget expires."""

    def run(self, client: RedisClient, budget_ms: float) -> int:
        self.details = {}
        stopwatch = Stopwatch()
        count = 0
        while stopwatch.elapsed_ms() < budget_ms:
            self.execute_operation(client, count)
            count += 1
        return count

    @abstractmethod
    def execute_operation(self, client: RedisClient, count: int):
        """Execute the operation for iteration ``count``."""
        pass


class SingleOperationWorkload(LoopWorkload):
    name = "Single operation"

    def execute_operation(self, client: RedisClient, count: int):
        client.set(self.key("single", count), str(count))


class LargeValueWorkload(LoopWorkload):
    name = "Large data processing"

    VALUE_SIZE = 10 * 1024

    def __init__(self, key_namespace: str = "test"):
        super().__init__(key_namespace)
        self._value = "X" * self.VALUE_SIZE

    def execute_operation(self, client: RedisClient, count: int):
        client.set(self.key("large", count), self._value)


class HashWorkload(LoopWorkload):
    name = "Hash operation"

    def execute_operation(self, client: RedisClient, count: int):
        client.hset(self.key("hash", count), {
            "field1": f"value1_{count}",
            "field2": f"value2_{count}",
            "field3": f"value3_{count}",
        })


class ListWorkload(LoopWorkload):
    name = "List operation"

    # Values per list before moving on to the next key
    LIST_SPAN = 100

    def execute_operation(self, client: RedisClient, count: int):
        client.rpush(self.key("list", count // self.LIST_SPAN), str(count))


class SortedSetWorkload(LoopWorkload):
    name = "Sorted set"

    def execute_operation(self, client: RedisClient, count: int):
        client.zadd(self.key("sortedset"), {f"member_{count}": count})


class TransactionWorkload(LoopWorkload):
    """Three related keys per MULTI/EXEC; one commit counts as one operation."""
    name = "Transaction"

    def execute_operation(self, client: RedisClient, count: int):
        tag = self.hash_tag(count)
        pipe = client.pipeline(transaction=True)
        pipe.set(f"{tag}:a", "value1")
        pipe.set(f"{tag}:b", "value2")
        pipe.set(f"{tag}:c", "value3")
        pipe.execute()


class ReadWriteMixedWorkload(LoopWorkload):
    """Write key n, read key n-1; the pair counts as one iteration."""
    name = "Read/Write mixed"

    def execute_operation(self, client: RedisClient, count: int):
        client.set(self.key("rw", count), str(count))
        client.get(self.key("rw", max(0, count - 1)))


class ExpiringWriteWorkload(LoopWorkload):
    name = "Key expiration setting"

    TTL_SECONDS = 5 * 60

    def execute_operation(self, client: RedisClient, count: int):
        client.set(self.key("expire", count), str(count), ex=self.TTL_SECONDS)


class JsonDocumentWorkload(LoopWorkload):
    name = "Complex JSON"

    @staticmethod
    def build_document(count: int) -> Dict[str, Any]:
        return {
            "id": count,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": {
                "array": [1, 2, 3, 4, 5],
                "nested": {
                    "field1": "value1",
                    "field2": count,
                    "field3": {
                        "subfield1": "subvalue1",
                        "subfield2": time.time_ns(),
                    },
                },
            },
        }

    def execute_operation(self, client: RedisClient, count: int):
        document = json.dumps(self.build_document(count), separators=(",", ":"))
        client.set(self.key("complexjson", count), document)


class BatchWorkload(BaseWorkload):
    """
    Writes in non-transactional pipelines of up to ``CHUNK_SIZE`` commands.

    Every chunk shares one hash tag so it lands on a single slot. Only replies
    returned by a completed pipeline are counted.
    """
    name = "Batch operation"

    CHUNK_SIZE = 100
    # Counter values sharing one hash tag
    TAG_SPAN = 1000
    KEY_LABEL = "batch"

    def run(self, client: RedisClient, budget_ms: float) -> int:
        self.details = {}
        stopwatch = Stopwatch()
        count = 0
        while stopwatch.elapsed_ms() < budget_ms:
            tag = self.hash_tag(count // self.TAG_SPAN)
            pipe = client.pipeline(transaction=False)
            queued = 0
            for i in range(self.CHUNK_SIZE):
                if stopwatch.elapsed_ms() >= budget_ms:
                    break
                pipe.set(f"{tag}:{self.KEY_LABEL}:{i}", str(count + queued))
                queued += 1

            if queued:
                replies = pipe.execute()
                count += len(replies)
        return count


class PipelineWorkload(BatchWorkload):
    name = "Pipeline"

    TAG_SPAN = 100
    KEY_LABEL = "pipeline"


class KeySearchWorkload(BaseWorkload):
    """
    One SCAN pass over every node; never loops on the budget.

    An empty namespace gets ``SEED_COUNT`` dummy keys so later passes find
    something to enumerate.
    """
    name = "Key Search"

    PAGE_SIZE = 100
    SEED_COUNT = 100

    def run(self, client: RedisClient, budget_ms: float) -> int:
        self.details = {}
        count = 0
        for _ in client.scan_keys(self.key("*"), count=self.PAGE_SIZE):
            count += 1

        if count == 0:
            self.logger.info(f"No keys matched {self.key('*')}, seeding {self.SEED_COUNT} keys")
            for i in range(self.SEED_COUNT):
                client.set(self.key("search", "dummy", i), f"value_{i}")
        return count


class ChannelSubscriber:
    """
    Listens on one channel from a background thread.

    Received messages are put on ``messages`` as (receive time in ms, payload);
    only the workload thread consumes the queue.
    """

    POLL_TIMEOUT = 0.1
    SUBSCRIBE_TIMEOUT = 1.0

    def __init__(self, client: RedisClient, channel: str):
        self.channel = channel
        self.logger = get_logger()
        self.messages: "queue.Queue[Tuple[float, str]]" = queue.Queue()
        self._pubsub = client.pubsub()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        """Subscribe, wait for the confirmation, then start listening."""
        self._pubsub.subscribe(self.channel)

        deadline = time.monotonic() + self.SUBSCRIBE_TIMEOUT
        while time.monotonic() < deadline:
            message = self._pubsub.get_message(timeout=self.POLL_TIMEOUT)
            if message and message["type"] == "subscribe":
                break
        else:
            self.logger.warning(f"No subscribe confirmation for {self.channel} within {self.SUBSCRIBE_TIMEOUT}s")

        self._thread = threading.Thread(target=self._listen, name=f"Subscriber-{self.channel}", daemon=True)
        self._thread.start()

    def _listen(self):
        while not self._stop_event.is_set():
            try:
                message = self._pubsub.get_message(ignore_subscribe_messages=True, timeout=self.POLL_TIMEOUT)
            except (ConnectionError, ValueError):
                # Connection closed underneath us during shutdown
                break
            except RedisError as e:
                self.logger.error(f"Subscriber error on {self.channel}: {e}")
                break

            if message and message["type"] == "message":
                self.messages.put((now_ms(), message["data"]))

    def wait_for(self, received: int, expected: int, timeout: float,
                 on_message: Optional[Callable[[float, str], None]] = None) -> int:
        """
        Consume messages until ``expected`` have been received or ``timeout``
        seconds pass. Returns the updated received count.
        """
        deadline = time.monotonic() + timeout
        while received < expected:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                received_at, payload = self.messages.get(timeout=remaining)
            except queue.Empty:
                break
            received += 1
            if on_message:
                on_message(received_at, payload)
        return received

    def drain(self, received: int, on_message: Optional[Callable[[float, str], None]] = None) -> int:
        """Consume whatever is already queued without blocking."""
        while True:
            try:
                received_at, payload = self.messages.get_nowait()
            except queue.Empty:
                return received
            received += 1
            if on_message:
                on_message(received_at, payload)

    def stop(self, timeout: float = 2.0):
        """Stop the listener thread, unsubscribe and close the subscription."""
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                self.logger.warning(f"Subscriber thread for {self.channel} did not stop within {timeout}s")

        try:
            self._pubsub.unsubscribe(self.channel)
        except RedisError as e:
            self.logger.warning(f"Error unsubscribing from {self.channel}: {e}")
        finally:
            self._pubsub.close()


class PubSubThroughputWorkload(BaseWorkload):
    """
    Publishes JSON envelopes to a subscribed channel.

    Every ``CONFIRM_EVERY`` publishes it waits (bounded) for the subscriber to
    catch up. Returns the number of messages published.
    """
    name = "Pub/Sub"

    CONFIRM_EVERY = 1000
    CONFIRM_TIMEOUT = 1.0
    DRAIN_TIMEOUT = 1.0

    def run(self, client: RedisClient, budget_ms: float) -> int:
        self.details = {}
        channel = self.key("pubsub", "channel")
        subscriber = ChannelSubscriber(client, channel)

        published = 0
        received = 0
        try:
            subscriber.start()
            stopwatch = Stopwatch()
            while stopwatch.elapsed_ms() < budget_ms:
                message = json.dumps({
                    "id": published,
                    "timestamp": now_ms(),
                    "data": f"test_message_{published}",
                })
                client.publish(channel, message)
                published += 1

                if published % self.CONFIRM_EVERY == 0:
                    received = subscriber.wait_for(received, published, self.CONFIRM_TIMEOUT)
                    if received < published:
                        self.logger.debug(f"Subscriber behind: {received}/{published} messages confirmed")

            received = subscriber.wait_for(received, published, self.DRAIN_TIMEOUT)
        finally:
            subscriber.stop()

        self.details = {"received": received}
        return published


class PubSubLatencyWorkload(BaseWorkload):
    """
    Measures publish-to-receive latency from timestamps embedded in messages.

    Returns the number of messages received, unlike the throughput workload
    which returns the number published.
    """
    name = "Pub/Sub Latency"

    PUBLISH_DELAY = 0.001
    DRAIN_TIMEOUT = 1.0

    def run(self, client: RedisClient, budget_ms: float) -> int:
        self.details = {}
        channel = self.key("pubsub", "latency")
        subscriber = ChannelSubscriber(client, channel)

        latency_sum = 0.0
        samples = 0

        def on_message(received_at: float, payload: str):
            nonlocal latency_sum, samples
            try:
                latency = received_at - json.loads(payload)["timestamp"]
            except (ValueError, TypeError, KeyError):
                self.logger.warning(f"Ignoring unrecognised message on {channel}: {payload!r:.80}")
                return
            latency_sum += latency
            samples += 1

        published = 0
        received = 0
        try:
            subscriber.start()
            stopwatch = Stopwatch()
            while stopwatch.elapsed_ms() < budget_ms:
                message = json.dumps({
                    "id": published,
                    "timestamp": now_ms(),
                    "data": f"latency_test_{published}",
                })
                client.publish(channel, message)
                published += 1
                time.sleep(self.PUBLISH_DELAY)
                received = subscriber.drain(received, on_message)

            received = subscriber.wait_for(received, published, self.DRAIN_TIMEOUT, on_message)
        finally:
            subscriber.stop()

        if samples > 0:
            avg_latency = latency_sum / samples
            self.details = {"avg_latency_ms": avg_latency}
            self.logger.info(f"Average Pub/Sub latency: {avg_latency:.2f}ms")
        return received


class WorkloadFactory:
    """Builds the workload catalog."""

    CATALOG: List[Type[BaseWorkload]] = [
        SingleOperationWorkload,
        BatchWorkload,
        LargeValueWorkload,
        HashWorkload,
        ListWorkload,
        SortedSetWorkload,
        TransactionWorkload,
        ReadWriteMixedWorkload,
        ExpiringWriteWorkload,
        JsonDocumentWorkload,
        PipelineWorkload,
        KeySearchWorkload,
        PubSubThroughputWorkload,
        PubSubLatencyWorkload,
    ]

    @staticmethod
    def list_workloads() -> List[str]:
        """Workload names in catalog order."""
        return [workload_cls.name for workload_cls in WorkloadFactory.CATALOG]

    @staticmethod
    def create_catalog(key_namespace: str = "test", names: Optional[List[str]] = None) -> List[BaseWorkload]:
        """Instantiate the catalog, optionally restricted to ``names`` (order is always catalog order)."""
        if names is not None:
            unknown = set(names) - set(WorkloadFactory.list_workloads())
            if unknown:
                raise ValueError(f"Unknown workloads: {', '.join(sorted(unknown))}")

        return [
            workload_cls(key_namespace)
            for workload_cls in WorkloadFactory.CATALOG
            if names is None or workload_cls.name in names
        ]
