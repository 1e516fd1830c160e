"""Tests for a single in-memory log."""

import pytest

from streamlog.core.ids import ZERO_ID, EntryID
from streamlog.core.log.entry import normalize_fields
from streamlog.core.log.log import Log
from streamlog.core.log.retention import RetentionManager
from streamlog.errors import ValidationError


class TestEntryFields:
    """Test field normalization."""
    
    def test_mapping_keeps_order(self):
        """Insertion order is preserved."""
        fields = normalize_fields({"b": "1", "a": "2"})
        
        assert list(fields) == ["b", "a"]
    
    def test_flat_tokens(self):
        """Flat key/value tokens become a mapping."""
        fields = normalize_fields(["item", "A", "qty", "3"])
        
        assert dict(fields) == {"item": "A", "qty": "3"}
    
    def test_odd_token_count(self):
        """An odd token list is malformed."""
        with pytest.raises(ValidationError):
            normalize_fields(["item", "A", "qty"])
    
    def test_duplicate_keys(self):
        """A key may appear once per entry."""
        with pytest.raises(ValidationError):
            normalize_fields(["item", "A", "item", "B"])
    
    def test_empty_fields(self):
        """An entry needs at least one field."""
        with pytest.raises(ValidationError):
            normalize_fields({})
    
    def test_bare_string_rejected(self):
        """A string is not split into key/value characters."""
        with pytest.raises(ValidationError):
            normalize_fields("ab")
        with pytest.raises(ValidationError):
            normalize_fields("")
    
    def test_fields_are_read_only(self):
        """Appended entries cannot be mutated."""
        fields = normalize_fields({"item": "A"})
        
        with pytest.raises(TypeError):
            fields["item"] = "B"


class TestLog:
    """Test Log."""
    
    @pytest.fixture
    def log(self):
        """Create a log holding five entries in one millisecond."""
        log = Log("orders")
        for i in range(5):
            log.append({"n": str(i)}, now_ms=1000)
        return log
    
    def test_create_log(self):
        """A new log is empty."""
        log = Log("orders")
        
        assert len(log) == 0
        assert log.last_id == ZERO_ID
        assert log.first_entry() is None
    
    def test_append_assigns_increasing_ids(self, log):
        """Ids grow within a millisecond."""
        ids = [entry.id for entry in log.range(ZERO_ID, EntryID(2000, 0))]
        
        assert ids == [EntryID(1000, i) for i in range(5)]
        assert log.entries_added == 5
    
    def test_get(self, log):
        """Entries are found by id."""
        assert log.get(EntryID(1000, 2)).fields["n"] == "2"
        assert log.get(EntryID(1000, 9)) is None
    
    def test_range_limit(self, log):
        """Limit caps the result; 0 means unbounded."""
        assert len(log.range(ZERO_ID, EntryID(1000, 4), limit=2)) == 2
        assert len(log.range(ZERO_ID, EntryID(1000, 4), limit=0)) == 5
    
    def test_range_inverted_bounds(self, log):
        """Start above end matches nothing."""
        assert log.range(EntryID(1000, 3), EntryID(1000, 1)) == []
    
    def test_rev_range(self, log):
        """Reverse range is newest first."""
        entries = log.rev_range(EntryID(1000, 3), EntryID(1000, 1))
        
        assert [entry.id.seq for entry in entries] == [3, 2, 1]
    
    def test_after(self, log):
        """after() is exclusive of its bound."""
        entries = log.after(EntryID(1000, 2))
        
        assert [entry.id.seq for entry in entries] == [3, 4]
        assert len(log.after(ZERO_ID, limit=3)) == 3
    
    def test_trim_by_count(self, log):
        """Trimming keeps the newest entries."""
        removed = log.trim(RetentionManager(max_len=2))
        
        assert removed == 3
        assert len(log) == 2
        assert log.first_entry().id == EntryID(1000, 3)
        assert log.max_deleted_id == EntryID(1000, 2)
    
    def test_trim_keeps_last_id(self, log):
        """Trimming everything keeps id allocation monotonic."""
        log.trim(RetentionManager(max_len=0))
        
        assert len(log) == 0
        assert log.append({"n": "x"}, now_ms=1) == EntryID(1000, 5)
    
    def test_trim_by_min_id(self, log):
        """Entries below min_id are removed."""
        removed = log.trim(RetentionManager(min_id=EntryID(1000, 3)))
        
        assert removed == 3
        assert log.first_entry().id == EntryID(1000, 3)
