"""
Tests for the ingestion cycle, the scheduler's overlap guard and the
retention sweep.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from conftest import StubSource, connect_all, fake_socket, make_article, raw

from newswire.jobs.ingestion_cycle import CycleStats, IngestionCycleJob
from newswire.jobs.retention import RetentionJob
from newswire.models.domain import Topic
from newswire.services.article_store import ArticleStore
from newswire.services.cache import RecencyCache
from newswire.services.data_ingestion.aggregator import SourceAggregator
from newswire.services.data_ingestion.dedup import DedupEngine
from newswire.services.data_ingestion.scheduler import IngestionScheduler
from newswire.services.fanout import NEWS_TOPIC_UPDATE, NEWS_UPDATE, ConnectionManager, FanoutPublisher

STORY_A = dict(
    title="Markets rally as central bank holds rates",
    summary="Shares rose sharply after policymakers left borrowing costs unchanged.",
    url="https://example.com/markets",
    topic_label="business",
)
STORY_B = dict(
    title="Completely Different Story About Wildlife",
    summary="Conservationists report a record number of otters along the river.",
    url="https://example.com/otters",
    topic_label="sci",
)


def build_scheduler(database, source):
    store = ArticleStore(database)
    job = IngestionCycleJob(
        aggregator=SourceAggregator(sources=[source]),
        dedup_engine=DedupEngine(),
        store=store,
    )
    return IngestionScheduler(job, RetentionJob(store))


class SlowJob:
    """Cycle or sweep double that takes a while and counts its runs."""

    def __init__(self, result, delay=0.2):
        self.result = result
        self.delay = delay
        self.calls = 0

    async def run(self, now=None):
        self.calls += 1
        await asyncio.sleep(self.delay)
        return self.result


class TestIngestionCycle:
    """End-to-end cycle tests with stub sources and a real store."""

    def test_three_sources_end_to_end(self, open_database):
        """A re-fetched duplicate collapses; both distinct stories are stored and announced."""
        manager = ConnectionManager()
        everyone, business_fan, science_fan = fake_socket(), fake_socket(), fake_socket()
        connect_all(manager, everyone, business_fan, science_fan)
        manager.subscribe(business_fan, [Topic.BUSINESS])
        manager.subscribe(science_fan, [Topic.SCIENCE])

        sources = [
            StubSource("BBC", [raw(source_name="BBC", **STORY_A)]),
            StubSource("Reuters", [raw(source_name="Reuters", **STORY_A)]),
            StubSource("The Guardian", [raw(source_name="The Guardian", **STORY_B)]),
        ]

        async def scenario():
            async with open_database() as database:
                job = IngestionCycleJob(
                    aggregator=SourceAggregator(sources=sources),
                    dedup_engine=DedupEngine(),
                    store=ArticleStore(database),
                    publisher=FanoutPublisher(manager),
                )
                return await job.run()

        stats = asyncio.run(scenario())

        assert stats.success
        assert stats.fetched == 3
        assert stats.exact_duplicates == 1
        assert stats.near_duplicates == 0
        assert stats.persisted == 2
        assert stats.published == 2

        assert [m["event"] for m in everyone.sent] == [NEWS_UPDATE]
        assert everyone.sent[0]["data"]["count"] == 2
        assert [m["event"] for m in business_fan.sent] == [NEWS_UPDATE, NEWS_TOPIC_UPDATE]
        assert business_fan.sent[1]["data"]["data"]["url"] == STORY_A["url"]
        assert [m["event"] for m in science_fan.sent] == [NEWS_UPDATE, NEWS_TOPIC_UPDATE]
        assert science_fan.sent[1]["data"]["data"]["url"] == STORY_B["url"]

    def test_second_cycle_publishes_nothing_new(self, open_database):
        manager = ConnectionManager()
        socket = fake_socket()
        connect_all(manager, socket)

        async def scenario():
            async with open_database() as database:
                job = IngestionCycleJob(
                    aggregator=SourceAggregator(sources=[StubSource("BBC", [raw(**STORY_A)])]),
                    dedup_engine=DedupEngine(),
                    store=ArticleStore(database),
                    publisher=FanoutPublisher(manager),
                )
                return await job.run(), await job.run()

        first, second = asyncio.run(scenario())

        assert first.persisted == 1
        assert second.persisted == 0
        assert second.published == 0
        assert len(socket.sent) == 1

    def test_all_sources_failed_is_a_cycle_error(self, open_database):
        async def scenario():
            async with open_database() as database:
                job = IngestionCycleJob(
                    aggregator=SourceAggregator(sources=[
                        StubSource("BBC", error=RuntimeError("down")),
                        StubSource("Reuters", error=RuntimeError("down")),
                    ]),
                    dedup_engine=DedupEngine(),
                    store=ArticleStore(database),
                )
                return await job.run()

        stats = asyncio.run(scenario())

        assert not stats.success
        assert stats.errors == ["all sources failed"]
        assert stats.persisted == 0


class TestIngestionScheduler:
    """Tests for the non-overlap guard."""

    def test_overlapping_trigger_is_dropped(self, open_database):
        """A trigger during a running cycle makes no adapter calls and is not queued."""
        slow = StubSource("Slow", [raw(**STORY_A)], delay=0.2)

        async def scenario():
            async with open_database() as database:
                scheduler = build_scheduler(database, slow)
                first = asyncio.create_task(scheduler.run_cycle())
                await asyncio.sleep(0.05)
                assert scheduler.is_cycle_running
                dropped = await scheduler.run_cycle()
                completed = await first
                return scheduler, dropped, completed

        scheduler, dropped, completed = asyncio.run(scenario())

        assert dropped is None
        assert completed.persisted == 1
        assert slow.calls == 1
        assert not scheduler.is_cycle_running

    def test_flag_cleared_when_every_source_fails(self, open_database):
        failing = StubSource("Failing", error=RuntimeError("down"))

        async def scenario():
            async with open_database() as database:
                scheduler = build_scheduler(database, failing)
                first = await scheduler.run_cycle()
                second = await scheduler.run_cycle()
                return scheduler, first, second

        scheduler, first, second = asyncio.run(scenario())

        assert not first.success
        assert second is not None
        assert failing.calls == 2
        assert not scheduler.is_cycle_running
        assert scheduler.last_cycle is second

    def test_flag_cleared_when_cycle_raises(self):
        class ExplodingJob:
            aggregator = SourceAggregator(sources=[])

            async def run(self):
                raise RuntimeError("unexpected")

        scheduler = IngestionScheduler(ExplodingJob())

        assert asyncio.run(scheduler.run_cycle()) is None
        assert not scheduler.is_cycle_running

    def test_overlapping_sweep_is_dropped(self):
        """A sweep trigger during a running sweep does not run the job again."""
        sweep = SlowJob(3)
        scheduler = IngestionScheduler(SlowJob(CycleStats()), retention_job=sweep)

        async def scenario():
            first = asyncio.create_task(scheduler.run_retention_sweep())
            await asyncio.sleep(0.05)
            assert scheduler.is_sweep_running
            dropped = await scheduler.run_retention_sweep()
            return dropped, await first

        dropped, completed = asyncio.run(scenario())

        assert dropped is None
        assert completed == 3
        assert sweep.calls == 1
        assert not scheduler.is_sweep_running

    def test_cycle_and_sweep_guards_are_independent(self):
        """A running cycle does not block the sweep, nor the other way round."""
        cycle, sweep = SlowJob(CycleStats(persisted=1)), SlowJob(2)
        scheduler = IngestionScheduler(cycle, retention_job=sweep)

        async def scenario():
            cycle_task = asyncio.create_task(scheduler.run_cycle())
            sweep_task = asyncio.create_task(scheduler.run_retention_sweep())
            await asyncio.sleep(0.05)
            both_running = scheduler.is_cycle_running and scheduler.is_sweep_running
            return both_running, await cycle_task, await sweep_task

        both_running, cycle_stats, swept = asyncio.run(scenario())

        assert both_running
        assert cycle_stats.persisted == 1
        assert swept == 2
        assert cycle.calls == 1
        assert sweep.calls == 1
        assert not scheduler.is_cycle_running
        assert not scheduler.is_sweep_running

    def test_start_schedules_jobs(self, open_database):
        async def scenario():
            async with open_database() as database:
                scheduler = build_scheduler(database, StubSource("BBC"))
                scheduler.start()
                try:
                    return scheduler.get_status()
                finally:
                    scheduler.stop()

        status = asyncio.run(scenario())

        assert status["running"] is True
        assert status["next_cycle"] is not None
        assert status["fetch_interval_minutes"] == 5


class TestRetention:
    """Tests for the retention sweep."""

    def test_sweep_flips_only_stale_articles(self, open_database):
        now = datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)
        naive_now = now.replace(tzinfo=None)

        async def scenario():
            async with open_database() as database:
                store = ArticleStore(database)
                await store.save_articles([
                    make_article(title="Eight day old story about trade", url="https://example.com/old",
                                 published_at=naive_now - timedelta(days=8)),
                    make_article(title="Six day old story about climate", url="https://example.com/recent",
                                 published_at=naive_now - timedelta(days=6)),
                ])
                count = await RetentionJob(store, retention_days=7).run(now=now)
                return count, await store.latest(limit=10)

        count, remaining = asyncio.run(scenario())

        assert count == 1
        assert [a.url for a in remaining] == ["https://example.com/recent"]

    def test_sweep_evicts_cached_articles(self, open_database, fake_redis):
        """Swept articles stop appearing in cached latest and topic reads."""
        now = datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)
        stale = make_article(
            title="Eight day old story about trade",
            url="https://example.com/old",
            topic=Topic.BUSINESS,
            published_at=now.replace(tzinfo=None) - timedelta(days=8),
        )

        async def scenario():
            async with open_database() as database:
                store = ArticleStore(database, RecencyCache(fake_redis))
                [saved] = await store.save_articles([stale])
                count = await RetentionJob(store, retention_days=7).run(now=now)
                return (
                    saved,
                    count,
                    await store.latest(limit=10),
                    await store.by_topic(Topic.BUSINESS, limit=10),
                )

        saved, count, latest, business = asyncio.run(scenario())

        assert count == 1
        assert latest == []
        assert business == []
        assert f"news:item:{saved.id}" not in fake_redis.data
