"""End-to-end message flows through the cache-aside layer.

Uses the in-memory durable and cache stores wired together by
create_services, exercising repository, cache, job and warm-up together.
"""

import pytest

from chatcache.core.config import Settings
from chatcache.core.models import MessageType
from chatcache.utils.service_factory import create_services
from tests.conftest import make_message, new_message

pytestmark = pytest.mark.integration


@pytest.fixture
async def services(message_store, cache_store):
    config = Settings(_env_file=None, redis_startup_timeout=0.1, reconciliation_enabled=False)
    services = await create_services(config, store=message_store, cache_store=cache_store)
    yield services
    await services.lifecycle_manager().shutdown()


async def test_send_read_delete_scenario(services):
    """Three messages, read the last two, delete the middle one, read again."""
    repository = services.repository
    m1 = await repository.create(new_message("m1", user_id="u1"))
    m2 = await repository.create(new_message("m2", user_id="u1"))
    m3 = await repository.create(new_message("m3", user_id="u1"))
    await services.tasks.drain()

    assert [m.id for m in await repository.find_by_user("u1", 2)] == [m2.id, m3.id]

    assert await repository.delete(m2.id) is True
    await services.tasks.drain()

    assert [m.id for m in await repository.find_by_user("u1", 2)] == [m1.id, m3.id]


async def test_outage_then_recovery(services, message_store, cache_store):
    """Writes during a cache outage stay readable and the cache recovers."""
    repository = services.repository
    before = await repository.create(new_message("before outage", user_id="u1"))
    await services.tasks.drain()

    cache_store.fail()
    during = await repository.create(new_message("during outage", user_id="u1"))
    await services.tasks.drain()

    history = await repository.find_by_user("u1", 10)
    assert [m.id for m in history] == [before.id, during.id]
    assert (await repository.find_by_id(during.id)).type == MessageType.USER

    # the stale cached list still lacks the outage write; warming repairs it
    cache_store.failing_operations.clear()
    await services.warmer.warm_in_background("u1")
    await services.tasks.drain()

    assert [m.id for m in await repository.find_by_user("u1", 10)] == [before.id, during.id]


async def test_login_warm_up_makes_next_read_a_hit(services, message_store, cache_store):
    """A warm-up on login serves the following history read from the cache."""
    for i in range(5):
        await message_store.insert(new_message(f"old {i}", user_id="u1"))

    services.warmer.warm_in_background("u1")
    await services.tasks.drain()
    message_store.failing = True

    history = await services.repository.find_by_user("u1", 3)

    assert [m.content for m in history] == ["old 2", "old 3", "old 4"]


async def test_reconciliation_heals_cache_only_messages(services, message_store, cache_store):
    """Messages present only in a soon-to-expire cached list become durable."""
    stored = await services.repository.create(new_message("durable", user_id="u1"))
    await services.tasks.drain()
    orphan = make_message("orphan", user_id="u1", offset_seconds=3600)
    await services.cache.append_message("u1", orphan)
    cache_store.ttls["messages:user:u1"] = 120

    report = await services.job.trigger_sync_now()

    assert report.messages_inserted == 1
    assert set(message_store.messages) == {stored.id, "orphan"}
    assert message_store.messages["orphan"].created_at == orphan.created_at
