"""Tests for the consumer group registry."""

import pytest

from streamlog.consumer.group.registry import ConsumerGroupRegistry
from streamlog.core.ids import ZERO_ID, EntryID
from streamlog.core.log.store import LogStore
from streamlog.errors import (
    GroupExistsError,
    NoSuchGroupError,
    NoSuchLogError,
    ValidationError,
)


class TestConsumerGroupRegistry:
    """Test ConsumerGroupRegistry."""
    
    @pytest.fixture
    def store(self):
        """Create a store with one populated log."""
        store = LogStore()
        store.append("orders", {"item": "A"}, now_ms=1000)
        store.append("orders", {"item": "B"}, now_ms=1001)
        return store
    
    @pytest.fixture
    def registry(self, store):
        """Create a registry over the store."""
        return ConsumerGroupRegistry(store)
    
    def test_create_from_beginning(self, registry):
        """Start id 0 puts the cursor before everything."""
        group = registry.create_group("orders", "g1", "0")
        
        assert group.last_delivered_id == ZERO_ID
        assert registry.get_group("orders", "g1") is group
    
    def test_create_new_only(self, registry):
        """$ puts the cursor at the current tail."""
        group = registry.create_group("orders", "g1", "$")
        
        assert group.last_delivered_id == EntryID(1001, 0)
    
    def test_create_explicit_id(self, registry):
        """Explicit ids set the cursor directly."""
        group = registry.create_group("orders", "g1", "1000-0")
        
        assert group.last_delivered_id == EntryID(1000, 0)
    
    def test_duplicate_group(self, registry):
        """A name can be used once per log."""
        registry.create_group("orders", "g1", "0")
        
        with pytest.raises(GroupExistsError):
            registry.create_group("orders", "g1", "$")
    
    def test_same_name_on_other_log(self, registry, store):
        """Group names are scoped to their log."""
        store.append("payments", {"k": "v"}, now_ms=1)
        
        registry.create_group("orders", "g1", "0")
        registry.create_group("payments", "g1", "0")
        
        assert len(registry.groups_for("payments")) == 1
    
    def test_missing_log(self, registry):
        """Non-$ starts need an existing log."""
        with pytest.raises(NoSuchLogError):
            registry.create_group("missing", "g1", "0")
    
    def test_missing_log_new_only_creates_it(self, registry, store):
        """$ on a missing log creates the empty log."""
        group = registry.create_group("fresh", "g1", "$")
        
        assert "fresh" in store
        assert group.last_delivered_id == ZERO_ID
    
    def test_missing_log_mkstream(self, registry, store):
        """mkstream creates the log for any start id."""
        registry.create_group("fresh", "g1", "0", mkstream=True)
        
        assert "fresh" in store
    
    def test_empty_group_name(self, registry):
        """Group names must be non-empty."""
        with pytest.raises(ValidationError):
            registry.create_group("orders", "", "0")
    
    def test_delete_group(self, registry):
        """Deleted groups are gone, deleting twice fails."""
        registry.create_group("orders", "g1", "0")
        
        registry.delete_group("orders", "g1")
        
        assert registry.find_group("orders", "g1") is None
        with pytest.raises(NoSuchGroupError):
            registry.delete_group("orders", "g1")
    
    def test_ensure_and_delete_consumer(self, registry):
        """Consumers are registered lazily and removable."""
        registry.create_group("orders", "g1", "0")
        
        assert registry.ensure_consumer("orders", "g1", "c1") is True
        assert registry.ensure_consumer("orders", "g1", "c1") is False
        assert registry.delete_consumer("orders", "g1", "c1") == 0
    
    def test_ensure_consumer_unknown_group(self, registry):
        """Consumers need a group."""
        with pytest.raises(NoSuchGroupError):
            registry.ensure_consumer("orders", "nope", "c1")
