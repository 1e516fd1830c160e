"""
Log entry model.

Entries are immutable once appended. Field sets keep insertion order and may
not repeat a key.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from streamlog.core.ids import EntryID
from streamlog.errors import ValidationError

FieldsInput = Union[Mapping[str, str], Sequence[str]]


@dataclass(frozen=True)
class Entry:
    """
    One record in a log.
    
    Attributes:
        id: Entry identifier
        fields: Ordered field mapping, or None when the entry was trimmed
            but is still referenced by a pending-entry ledger
    """
    id: EntryID
    fields: Optional[Mapping[str, str]]
    
    def is_deleted(self) -> bool:
        """Check if the underlying data is gone."""
        return self.fields is None
    
    def flat_fields(self) -> List[str]:
        """
        Get fields as a flat ``[key, value, ...]`` list.
        
        Returns:
            Flattened key/value tokens (empty for trimmed entries)
        """
        if self.fields is None:
            return []
        
        flat: List[str] = []
        for key, value in self.fields.items():
            flat.extend((key, value))
        return flat


def normalize_fields(fields: FieldsInput) -> Mapping[str, str]:
    """
    Validate and freeze a field set.
    
    Accepts either a mapping or a flat ``[key, value, ...]`` token list.
    
    Args:
        fields: Raw field input
    
    Returns:
        Read-only ordered mapping
    
    Raises:
        ValidationError: On a bare string, an odd token count, no fields,
            non-string keys/values, or a repeated key
    """
    if isinstance(fields, (str, bytes)):
        raise ValidationError("fields must be a mapping or a list of key/value tokens")
    if isinstance(fields, Mapping):
        pairs: Iterable = fields.items()
    else:
        tokens = list(fields)
        if len(tokens) % 2 != 0:
            raise ValidationError("wrong number of field tokens: expected key/value pairs")
        pairs = zip(tokens[0::2], tokens[1::2])
    
    normalized = {}
    for key, value in pairs:
        if not isinstance(key, str) or not isinstance(value, str):
            raise ValidationError("field keys and values must be strings")
        if key in normalized:
            raise ValidationError(f"duplicate field {key!r}")
        normalized[key] = value
    
    if not normalized:
        raise ValidationError("an entry needs at least one field")
    
    return MappingProxyType(normalized)
