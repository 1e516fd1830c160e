"""Tests for the multi-log store."""

import pytest

from streamlog.core.ids import EntryID
from streamlog.core.log.store import LogStore
from streamlog.errors import NoSuchLogError, ValidationError


class TestLogStore:
    """Test LogStore."""
    
    @pytest.fixture
    def store(self):
        """Create a store with a small sequence width."""
        return LogStore(sequence_bits=16)
    
    def test_append_creates_log(self, store):
        """First append creates the log."""
        assert "orders" not in store
        
        entry_id = store.append("orders", {"item": "A"}, now_ms=1000)
        
        assert "orders" in store
        assert entry_id == EntryID(1000, 0)
        assert store.length("orders") == 1
    
    def test_empty_log_name(self, store):
        """Empty names are rejected."""
        with pytest.raises(ValidationError):
            store.append("", {"item": "A"}, now_ms=1000)
    
    def test_malformed_fields_do_not_create_log(self, store):
        """A failed append leaves no trace."""
        with pytest.raises(ValidationError):
            store.append("orders", ["item"], now_ms=1000)
        
        assert "orders" not in store
    
    def test_logs_are_independent(self, store):
        """Each log has its own id sequence."""
        store.append("a", {"k": "v"}, now_ms=1000)
        store.append("a", {"k": "v"}, now_ms=1000)
        
        assert store.append("b", {"k": "v"}, now_ms=1000) == EntryID(1000, 0)
    
    def test_explicit_id(self, store):
        """Explicit ids are honored."""
        assert store.append("a", {"k": "v"}, now_ms=0, entry_id="42-7") == EntryID(42, 7)
    
    def test_range_with_tokens(self, store):
        """Range accepts sentinels, bare and exclusive bounds."""
        for ms in (10, 20, 30):
            store.append("a", {"ms": str(ms)}, now_ms=ms)
        
        assert [e.id.time_ms for e in store.range("a", "-", "+")] == [10, 20, 30]
        assert [e.id.time_ms for e in store.range("a", "20", "+")] == [20, 30]
        assert [e.id.time_ms for e in store.range("a", "(20-0", "+")] == [30]
        assert [e.id.time_ms for e in store.range("a", "-", "+", limit=1)] == [10]
        assert [e.id.time_ms for e in store.rev_range("a", "+", "-")] == [30, 20, 10]
    
    def test_range_unknown_log(self, store):
        """Unknown logs read as empty."""
        assert store.range("missing", "-", "+") == []
    
    def test_negative_limit(self, store):
        """Negative limits are malformed."""
        with pytest.raises(ValidationError):
            store.range("a", "-", "+", limit=-1)
    
    def test_append_with_inline_trim(self, store):
        """max_len trims right after the append."""
        for ms in range(1, 6):
            store.append("a", {"k": "v"}, now_ms=ms, max_len=3)
        
        assert store.length("a") == 3
        assert store.range("a", "-", "+")[0].id == EntryID(3, 0)
    
    def test_trim(self, store):
        """Trim returns the number removed."""
        for ms in range(1, 6):
            store.append("a", {"k": "v"}, now_ms=ms)
        
        assert store.trim("a", max_len=2) == 3
        assert store.trim("a", min_id="5") == 1
        assert store.trim("missing", max_len=0) == 0
    
    def test_trim_needs_a_bound(self, store):
        """Trim without any bound is malformed."""
        with pytest.raises(ValidationError):
            store.trim("a")
    
    def test_require(self, store):
        """require() raises for unknown logs."""
        with pytest.raises(NoSuchLogError):
            store.require("missing")
