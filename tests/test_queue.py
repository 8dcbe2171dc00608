import json

from adscraper.queue import JobQueue, queue_name

from fakes import FakeRedis


def _queue():
    return JobQueue(FakeRedis(), job_id=7)


def test_queue_is_named_after_the_job():
    assert queue_name(7) == "job7"
    assert _queue().name == "job7"


def test_fifo_within_a_priority():
    queue = _queue()
    for name in ("a", "b", "c"):
        queue.publish({"crawlName": name})

    order = [queue.reserve().json()["crawlName"] for _ in range(3)]

    assert order == ["a", "b", "c"]
    assert queue.reserve() is None


def test_requeued_assignment_runs_before_unstarted_work():
    queue = _queue()
    queue.publish('{"crawlName": "first"}')
    queue.publish('{"crawlName": "second"}')
    delivery = queue.reserve()

    queue.requeue(delivery)
    queue.ack(delivery)

    retry = queue.reserve()
    assert retry.body == '{"crawlName": "first"}'
    assert retry.priority > delivery.priority
    assert queue.reserve().json()["crawlName"] == "second"


def test_repeated_retries_keep_climbing():
    queue = _queue()
    queue.publish("{}")
    priorities = []
    delivery = queue.reserve()
    for _ in range(3):
        queue.requeue(delivery)
        queue.ack(delivery)
        delivery = queue.reserve()
        priorities.append(delivery.priority)

    assert priorities == [2, 3, 4]


def test_release_restores_original_position():
    queue = _queue()
    queue.publish('"a"')
    queue.publish('"b"')
    delivery = queue.reserve()

    queue.release(delivery)

    assert queue.client.hashes["job7:unacked"] == {}
    assert [queue.reserve().json() for _ in range(2)] == ["a", "b"]


def test_reserved_message_is_tracked_until_acked():
    queue = _queue()
    queue.publish({"jobId": 7})
    delivery = queue.reserve()

    unacked = queue.client.hashes["job7:unacked"]
    assert json.loads(unacked[delivery.token])["member"] == delivery.member
    assert queue.pending() == 0

    queue.ack(delivery)
    assert unacked == {}


def test_poll_gives_up_on_an_empty_queue():
    queue = _queue()
    sleeps = []

    assert queue.poll(attempts=3, interval_s=0.5, sleep=sleeps.append) is None
    assert sleeps == [0.5, 0.5, 0.5]


def test_poll_picks_up_late_message():
    queue = _queue()

    def sleep(_):
        queue.publish('"late"')

    delivery = queue.poll(attempts=5, interval_s=1, sleep=sleep)

    assert delivery.json() == "late"


def test_abandoned_reservation_is_delivered_to_a_new_worker():
    client = FakeRedis()
    now = [1000.0]
    crashed = JobQueue(client, job_id=7, lease_s=60, clock=lambda: now[0])
    crashed.publish({"crawlName": "orphan"})
    lost = crashed.reserve()
    del crashed

    fresh = JobQueue(client, job_id=7, lease_s=60, clock=lambda: now[0])
    assert fresh.poll(attempts=0) is None

    now[0] += 61
    delivery = fresh.poll(attempts=1, sleep=lambda _: None)

    assert delivery.json() == {"crawlName": "orphan"}
    assert delivery.score == lost.score
    assert delivery.token != lost.token
    assert list(client.hashes["job7:unacked"]) == [delivery.token]


def test_reclaim_keeps_original_order():
    client = FakeRedis()
    now = [0.0]
    queue = JobQueue(client, job_id=7, lease_s=10, clock=lambda: now[0])
    queue.publish('"a"')
    queue.publish('"b"')
    queue.reserve()

    now[0] = 11
    assert queue.reclaim() == 1
    assert client.hashes["job7:unacked"] == {}
    assert [queue.reserve().json() for _ in range(2)] == ["a", "b"]


def test_late_release_of_a_reclaimed_message_is_ignored():
    client = FakeRedis()
    now = [0.0]
    queue = JobQueue(client, job_id=7, lease_s=10, clock=lambda: now[0])
    queue.publish('"a"')
    delivery = queue.reserve()
    now[0] = 11
    queue.reclaim()
    again = queue.reserve()

    queue.release(delivery)

    assert queue.pending() == 0
    assert list(client.hashes["job7:unacked"]) == [again.token]


def test_reserve_retries_when_the_queue_changes_underneath():
    queue = _queue()
    queue.publish('"low"')
    queue.client.before_exec = lambda: queue.publish('"urgent"', priority=5)

    delivery = queue.reserve()

    assert delivery.json() == "urgent"
    assert queue.pending() == 1
    assert len(queue.client.hashes["job7:unacked"]) == 1
