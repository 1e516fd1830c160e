"""Tests for pending listings and claiming."""

import pytest

from streamlog.broker.broker import Broker, BrokerConfig
from streamlog.consumer.dispatcher import NewEntries
from streamlog.core.ids import ZERO_ID
from streamlog.errors import NoSuchGroupError, ValidationError


@pytest.fixture
def setup(broker):
    """Return a coroutine that delivers count entries to c1."""
    async def deliver(count=3):
        ids = [await broker.append("orders", {"n": str(i)}) for i in range(count)]
        await broker.create_group("orders", "g1", "0")
        await broker.read_group("orders", "g1", "c1", NewEntries())
        return ids
    return deliver


class TestPending:
    """Test pending listings."""
    
    @pytest.mark.asyncio
    async def test_filters(self, broker, clock, setup):
        """Rows filter by idle time, owner and range."""
        ids = await setup(3)
        clock.advance(1000)
        await broker.claim("orders", "g1", "c2", 0, ids[2])
        
        idle = await broker.pending("orders", "g1", min_idle_ms=500)
        owned = await broker.pending("orders", "g1", consumer="c2")
        ranged = await broker.pending("orders", "g1", str(ids[1]), "+", limit=1)
        
        assert [r.entry_id for r in idle] == ids[:2]
        assert [r.entry_id for r in owned] == [ids[2]]
        assert [r.entry_id for r in ranged] == [ids[1]]
    
    @pytest.mark.asyncio
    async def test_overview(self, broker, setup):
        """The overview counts rows per owner."""
        ids = await setup(3)
        
        overview = await broker.pending_overview("orders", "g1")
        
        assert overview.count == 3
        assert overview.min_id == ids[0]
        assert overview.max_id == ids[2]
        assert overview.consumers == {"c1": 3}
    
    @pytest.mark.asyncio
    async def test_negative_limit(self, broker, setup):
        """Limits cannot be negative."""
        await setup(1)
        
        with pytest.raises(ValidationError):
            await broker.pending("orders", "g1", limit=-1)
    
    @pytest.mark.asyncio
    async def test_unknown_group(self, broker, setup):
        """Listing an unknown group fails."""
        await setup(1)
        
        with pytest.raises(NoSuchGroupError):
            await broker.pending("orders", "nope")


class TestClaim:
    """Test claiming by id."""
    
    @pytest.mark.asyncio
    async def test_claim_idle_entry(self, broker, clock, setup):
        """Idle rows move to the claimer with a higher count."""
        ids = await setup(1)
        clock.advance(60_000)
        
        claimed = await broker.claim("orders", "g1", "c2", 60_000, ids[0])
        rows = await broker.pending("orders", "g1")
        
        assert [e.id for e in claimed] == ids
        assert claimed[0].fields == {"n": "0"}
        assert rows[0].owner == "c2"
        assert rows[0].delivery_count == 2
        assert rows[0].idle_ms == 0
    
    @pytest.mark.asyncio
    async def test_not_idle_enough(self, broker, clock, setup):
        """Rows below the idle threshold are skipped."""
        ids = await setup(1)
        clock.advance(59_999)
        
        claimed = await broker.claim("orders", "g1", "c2", 60_000, ids[0])
        rows = await broker.pending("orders", "g1")
        
        assert claimed == []
        assert rows[0].owner == "c1"
        assert rows[0].delivery_count == 1
    
    @pytest.mark.asyncio
    async def test_claim_resets_idle(self, broker, clock, setup):
        """A second claim right after the first is rejected."""
        ids = await setup(1)
        clock.advance(1000)
        
        assert len(await broker.claim("orders", "g1", "c2", 1000, ids[0])) == 1
        assert await broker.claim("orders", "g1", "c3", 1000, ids[0]) == []
    
    @pytest.mark.asyncio
    async def test_non_pending_ids_skipped(self, broker, clock, setup):
        """Acknowledged ids cannot be claimed."""
        ids = await setup(2)
        await broker.ack("orders", "g1", ids[0])
        clock.advance(10)
        
        claimed = await broker.claim("orders", "g1", "c2", 0, *ids)
        
        assert [e.id for e in claimed] == [ids[1]]
    
    @pytest.mark.asyncio
    async def test_duplicate_ids(self, broker, setup):
        """Repeated ids are claimed once."""
        ids = await setup(1)
        
        claimed = await broker.claim("orders", "g1", "c2", 0, ids[0], str(ids[0]))
        rows = await broker.pending("orders", "g1")
        
        assert len(claimed) == 1
        assert rows[0].delivery_count == 2
    
    @pytest.mark.asyncio
    async def test_trimmed_entry_changes_owner(self, broker, setup):
        """Trimmed rows move but are not returned."""
        ids = await setup(2)
        await broker.trim("orders", retain_count=1)
        
        claimed = await broker.claim("orders", "g1", "c2", 0, *ids)
        rows = await broker.pending("orders", "g1", consumer="c2")
        
        assert [e.id for e in claimed] == [ids[1]]
        assert [r.entry_id for r in rows] == ids
    
    @pytest.mark.asyncio
    async def test_just_id(self, broker, setup):
        """Id-only claims return ids and keep counts."""
        ids = await setup(2)
        
        claimed = await broker.claim("orders", "g1", "c2", 0, *ids, just_id=True)
        rows = await broker.pending("orders", "g1")
        
        assert claimed == ids
        assert [r.delivery_count for r in rows] == [1, 1]
        assert [r.owner for r in rows] == ["c2", "c2"]
    
    @pytest.mark.asyncio
    async def test_force(self, broker, setup):
        """Forced claims create rows for existing entries."""
        ids = await setup(2)
        await broker.ack("orders", "g1", ids[0])
        
        plain = await broker.claim("orders", "g1", "c2", 0, ids[0])
        forced = await broker.claim("orders", "g1", "c2", 0, ids[0], force=True)
        missing = await broker.claim("orders", "g1", "c2", 0, "1-0", force=True)
        rows = await broker.pending("orders", "g1", consumer="c2")
        
        assert plain == []
        assert [e.id for e in forced] == [ids[0]]
        assert missing == []
        assert [(r.entry_id, r.delivery_count) for r in rows] == [(ids[0], 1)]
    
    @pytest.mark.asyncio
    async def test_negative_idle(self, broker, setup):
        """Idle thresholds cannot be negative."""
        ids = await setup(1)
        
        with pytest.raises(ValidationError):
            await broker.claim("orders", "g1", "c2", -1, ids[0])
    
    @pytest.mark.asyncio
    async def test_malformed_id(self, broker, setup):
        """Malformed ids fail the whole claim."""
        ids = await setup(1)
        
        with pytest.raises(ValidationError):
            await broker.claim("orders", "g1", "c2", 0, ids[0], "bogus")
        
        rows = await broker.pending("orders", "g1")
        assert rows[0].owner == "c1"


class TestAutoClaim:
    """Test scan-and-claim."""
    
    @pytest.mark.asyncio
    async def test_claims_in_id_order(self, broker, clock, setup):
        """Rows are claimed in id order up to count."""
        ids = await setup(5)
        clock.advance(100)
        
        result = await broker.auto_claim("orders", "g1", "c2", 100, "0-0", count=2)
        
        assert [e.id for e in result.entries] == ids[:2]
        assert result.next_start_id == ids[2]
        assert result.missing_ids == []
    
    @pytest.mark.asyncio
    async def test_scan_to_end(self, broker, clock, setup):
        """A finished scan restarts at 0-0."""
        ids = await setup(3)
        clock.advance(100)
        
        first = await broker.auto_claim("orders", "g1", "c2", 100, "0-0", count=2)
        second = await broker.auto_claim(
            "orders", "g1", "c2", 100, first.next_start_id, count=2
        )
        
        assert [e.id for e in second.entries] == [ids[2]]
        assert second.next_start_id == ZERO_ID
    
    @pytest.mark.asyncio
    async def test_skips_busy_rows(self, broker, clock, setup):
        """Rows that are not idle long enough stay put."""
        ids = await setup(2)
        clock.advance(100)
        await broker.claim("orders", "g1", "c3", 0, ids[0])
        
        result = await broker.auto_claim("orders", "g1", "c2", 100)
        rows = await broker.pending("orders", "g1")
        
        assert [e.id for e in result.entries] == [ids[1]]
        assert [r.owner for r in rows] == ["c3", "c2"]
    
    @pytest.mark.asyncio
    async def test_trimmed_rows_reported(self, broker, setup):
        """Trimmed rows are claimed and reported by id."""
        ids = await setup(3)
        await broker.trim("orders", retain_count=1)
        
        result = await broker.auto_claim("orders", "g1", "c2", 0)
        
        assert [e.id for e in result.entries] == [ids[2]]
        assert result.missing_ids == ids[:2]
        assert (await broker.pending_overview("orders", "g1")).consumers == {"c2": 3}
    
    @pytest.mark.asyncio
    async def test_default_count(self, clock):
        """The configured default bounds a step."""
        broker = Broker(config=BrokerConfig(autoclaim_count=2), clock=clock)
        ids = [await broker.append("orders", {"n": str(i)}) for i in range(3)]
        await broker.create_group("orders", "g1", "0")
        await broker.read_group("orders", "g1", "c1", NewEntries())
        
        result = await broker.auto_claim("orders", "g1", "c2", 0)
        
        assert [e.id for e in result.entries] == ids[:2]
        assert result.next_start_id == ids[2]
    
    @pytest.mark.asyncio
    async def test_invalid_arguments(self, broker, setup):
        """Count must be positive and idle non-negative."""
        await setup(1)
        
        with pytest.raises(ValidationError):
            await broker.auto_claim("orders", "g1", "c2", 0, count=0)
        with pytest.raises(ValidationError):
            await broker.auto_claim("orders", "g1", "c2", -5)
