"""Per-job priority work queue on Redis with manual acknowledgement.

Each job ``<id>`` has a sorted set ``job<id>`` of pending messages. Scores
order messages by priority, then by publication order, so the highest
score is the highest-priority, oldest message. Reserving moves a message
into the ``job<id>:unacked`` hash in one transaction, together with a lease
deadline. The entry stays there until it is acknowledged or released back
to the queue. Entries whose lease has run out belong to workers that died
without cleaning up; :meth:`JobQueue.reclaim` puts them back at their
original score.
"""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import redis

from .logging import jlog
from .retry import FIRST_ATTEMPT_PRIORITY, retry_priority

# Publication sequence numbers stay below this, keeping FIFO order within a priority.
_PRIORITY_SCALE = 1_000_000_000_000
POLL_ATTEMPTS = 12
POLL_INTERVAL_S = 5.0
# Longer than any single crawl is allowed to run.
DEFAULT_LEASE_S = float(os.getenv("QUEUE_LEASE_S", 6 * 60 * 60))


def queue_name(job_id: int) -> str:
    return f"job{job_id}"


@dataclass(frozen=True)
class Delivery:
    body: str
    priority: int
    token: str
    member: str
    score: float

    def json(self) -> Any:
        return json.loads(self.body)


class JobQueue:
    def __init__(
        self,
        client: "redis.Redis",
        job_id: int,
        lease_s: float = DEFAULT_LEASE_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.job_id = job_id
        self.name = queue_name(job_id)
        self.unacked = f"{self.name}:unacked"
        self.seq = f"{self.name}:seq"
        self.reservations = f"{self.name}:reservations"
        self.lease_s = lease_s
        self.clock = clock

    @classmethod
    def from_url(cls, url: str, job_id: int, **kwargs: Any) -> "JobQueue":
        return cls(redis.from_url(url, decode_responses=True), job_id, **kwargs)

    def publish(self, body: str | Mapping[str, Any], priority: int = FIRST_ATTEMPT_PRIORITY) -> str:
        if not isinstance(body, str):
            body = json.dumps(body)
        seq = int(self.client.incr(self.seq))
        member = json.dumps({"id": seq, "priority": int(priority), "body": body}, sort_keys=True)
        self.client.zadd(self.name, {member: int(priority) * _PRIORITY_SCALE - seq})
        jlog("debug", event="queue_publish", queue=self.name, priority=priority, token=str(seq))
        return str(seq)

    def reserve(self) -> Delivery | None:
        """Move the best pending message into the unacked hash, or return None."""

        # A reclaimed message can be reserved again; each reservation gets its own token.
        token = str(self.client.incr(self.reservations))
        with self.client.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(self.name)
                    top = pipe.zrevrange(self.name, 0, 0, withscores=True)
                    if not top:
                        return None
                    member, score = top[0]
                    entry = {"member": member, "score": score, "expires": self.clock() + self.lease_s}
                    pipe.multi()
                    pipe.zrem(self.name, member)
                    pipe.hset(self.unacked, token, json.dumps(entry))
                    pipe.execute()
                    break
                except redis.WatchError:
                    continue
        msg = json.loads(member)
        return Delivery(body=msg["body"], priority=int(msg["priority"]), token=token, member=member, score=float(score))

    def reclaim(self) -> int:
        """Return reservations whose lease has expired to the queue; return how many."""

        with self.client.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(self.unacked)
                    now = self.clock()
                    expired = {}
                    for token, raw in pipe.hgetall(self.unacked).items():
                        entry = json.loads(raw)
                        # Entries without a deadline predate leases and have no owner to wait for.
                        if entry.get("expires", 0) <= now:
                            expired[token] = entry
                    if not expired:
                        return 0
                    pipe.multi()
                    for entry in expired.values():
                        pipe.zadd(self.name, {entry["member"]: entry["score"]})
                    pipe.hdel(self.unacked, *expired)
                    pipe.execute()
                    break
                except redis.WatchError:
                    continue
        for token in expired:
            jlog("warning", event="queue_reclaim", queue=self.name, token=token)
        return len(expired)

    def poll(
        self,
        attempts: int = POLL_ATTEMPTS,
        interval_s: float = POLL_INTERVAL_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Delivery | None:
        """Reserve a message, retrying ``attempts`` more times while the queue is empty."""

        self.reclaim()
        delivery = self.reserve()
        tries = 0
        while delivery is None and tries < attempts:
            tries += 1
            sleep(interval_s)
            self.reclaim()
            delivery = self.reserve()
        return delivery

    def ack(self, delivery: Delivery) -> None:
        self.client.hdel(self.unacked, delivery.token)

    def release(self, delivery: Delivery) -> None:
        """Put an unprocessed message back at its original position.

        Does nothing if the reservation was already reclaimed.
        """

        with self.client.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(self.unacked)
                    if not pipe.hexists(self.unacked, delivery.token):
                        return
                    pipe.multi()
                    pipe.zadd(self.name, {delivery.member: delivery.score})
                    pipe.hdel(self.unacked, delivery.token)
                    pipe.execute()
                    break
                except redis.WatchError:
                    continue
        jlog("info", event="queue_release", queue=self.name, token=delivery.token)

    def requeue(self, delivery: Delivery) -> str:
        """Publish the original assignment again, ahead of unstarted work."""

        priority = retry_priority(delivery.priority)
        token = self.publish(delivery.body, priority=priority)
        jlog("info", event="queue_requeue", queue=self.name, priority=priority, original_priority=delivery.priority)
        return token

    def pending(self) -> int:
        return int(self.client.zcard(self.name))


__all__ = ["DEFAULT_LEASE_S", "Delivery", "JobQueue", "POLL_ATTEMPTS", "POLL_INTERVAL_S", "queue_name"]
