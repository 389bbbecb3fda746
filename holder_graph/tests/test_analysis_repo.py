"""
Tests for TokenAnalysis persistence (uniqueness, ordering scans, caps).
"""
from datetime import timedelta

import pytest

from holder_graph.core.custom_types import Holder, HolderLink, TokenAnalysis
from holder_graph.core.errors import ValidationError
from holder_graph.persist.analysis_repo import check_caps
from holder_graph.persist.migrations import applied_versions, apply_migrations
from holder_graph.tests.conftest import ADDRESS, CHAIN, T0


def _analysis(address=ADDRESS, chain=CHAIN, last=T0, hours=24, **kw) -> TokenAnalysis:
    return TokenAnalysis(
        address=address,
        chain=chain,
        name="Test Token",
        symbol="TST",
        last_analysis=last,
        next_update_due=last + timedelta(hours=hours),
        **kw,
    )


@pytest.mark.asyncio
async def test_save_and_get_roundtrip(repo):
    saved = await repo.save(_analysis(holders=[Holder(address="0x1", percentage=12.5)]))
    loaded = await repo.get(ADDRESS, CHAIN)

    assert loaded == saved
    assert loaded.created_at == T0 and loaded.updated_at == T0
    assert loaded.holders[0].percentage == 12.5
    assert await repo.get(ADDRESS, "bsc") is None


@pytest.mark.asyncio
async def test_one_row_per_address_and_chain(repo, clock):
    await repo.save(_analysis())
    clock.advance(hours=1)
    second = await repo.save(_analysis(decentralization_score=40.0))
    await repo.save(_analysis(chain="bsc"))

    assert await repo.count() == 2
    assert second.created_at == T0
    assert second.updated_at == T0 + timedelta(hours=1)
    assert (await repo.get(ADDRESS, CHAIN)).decentralization_score == 40.0


@pytest.mark.asyncio
async def test_find_needing_update_orders_by_due_date(repo):
    a = "0x" + "01" * 20
    b = "0x" + "02" * 20
    c = "0x" + "03" * 20
    await repo.save(_analysis(address=a, hours=5))
    await repo.save(_analysis(address=b, hours=1))
    await repo.save(_analysis(address=c, hours=48))

    due = await repo.find_needing_update(T0 + timedelta(hours=6), limit=10)
    assert [x.address for x in due] == [b, a]

    limited = await repo.find_needing_update(T0 + timedelta(hours=6), limit=1)
    assert [x.address for x in limited] == [b]


@pytest.mark.asyncio
async def test_recent_orders_by_last_analysis(repo):
    for i in range(3):
        await repo.save(_analysis(address="0x" + f"{i:02d}" * 20, last=T0 + timedelta(minutes=i)))

    recent = await repo.recent(limit=2)

    assert [x.address for x in recent] == ["0x" + "02" * 20, "0x" + "01" * 20]


@pytest.mark.asyncio
async def test_over_cap_records_are_rejected(repo):
    base = _analysis()
    too_many = base.model_copy(update={'holders': [Holder(address=f"0x{i}") for i in range(151)]})
    with pytest.raises(ValidationError, match="holders"):
        await repo.save(too_many)

    link = HolderLink(source_address="0x1", target_address="0x2")
    too_many_links = base.model_copy(update={'holder_links': [link] * 1001})
    with pytest.raises(ValidationError, match="links"):
        await repo.save(too_many_links)

    assert await repo.count() == 0


def test_model_rejects_over_cap_holders():
    with pytest.raises(ValueError):
        _analysis(holders=[Holder(address=f"0x{i}") for i in range(151)])


def test_check_caps_accepts_records_at_cap():
    check_caps(_analysis(holders=[Holder(address=f"0x{i}") for i in range(150)]))


@pytest.mark.asyncio
async def test_update_screenshot(repo, clock):
    assert await repo.update_screenshot(ADDRESS, CHAIN, "x") is None

    await repo.save(_analysis())
    clock.advance(minutes=3)
    updated = await repo.update_screenshot(ADDRESS, CHAIN, "card:eth:" + ADDRESS)

    assert updated.screenshot_url == "card:eth:" + ADDRESS
    assert (await repo.get(ADDRESS, CHAIN)).screenshot_last_update == T0 + timedelta(minutes=3)


@pytest.mark.asyncio
async def test_delete_older_than(repo, clock):
    await repo.save(_analysis(address="0x" + "01" * 20))
    clock.advance(days=2)
    await repo.save(_analysis(address="0x" + "02" * 20))

    deleted = await repo.delete_older_than(T0 + timedelta(days=1))

    assert deleted == 1
    assert await repo.count() == 1


def test_migrations_are_idempotent(db):
    apply_migrations(db)
    assert applied_versions(db) == {"0001_token_analyses"}
