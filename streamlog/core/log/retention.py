"""
Log retention policies for head trimming.

Implements count-based and id-based retention: entries are removed from the
head of a log until the policy is satisfied. Trimming never touches pending
entry ledgers; ids still referenced there simply stop resolving to data.
"""

from enum import Enum
from typing import Optional

from streamlog.core.ids import EntryID
from streamlog.errors import ValidationError
from streamlog.utils.logging import get_logger

logger = get_logger(__name__)


class RetentionPolicy(Enum):
    """Retention policy types."""
    
    MAX_LEN = "maxlen"
    MIN_ID = "minid"
    BOTH = "both"


class RetentionManager:
    """
    Decides how many head entries a trim removes.
    
    Attributes:
        max_len: Number of newest entries to retain (None = unlimited)
        min_id: Smallest id to retain (None = unlimited)
        policy: Effective policy, or None when nothing is configured
    """
    
    def __init__(
        self,
        max_len: Optional[int] = None,
        min_id: Optional[EntryID] = None,
    ):
        """
        Initialize retention manager.
        
        Args:
            max_len: Max entries to keep (None = unlimited)
            min_id: Entries below this id are removed (None = unlimited)
        
        Raises:
            ValidationError: If max_len is negative
        """
        if max_len is not None and max_len < 0:
            raise ValidationError("retain count must be non-negative")
        
        self.max_len = max_len
        self.min_id = min_id
        
        if max_len is not None and min_id is not None:
            self.policy = RetentionPolicy.BOTH
        elif max_len is not None:
            self.policy = RetentionPolicy.MAX_LEN
        elif min_id is not None:
            self.policy = RetentionPolicy.MIN_ID
        else:
            self.policy = None
    
    def entries_to_trim(self, log) -> int:
        """
        Count head entries the policy removes from a log.
        
        Args:
            log: Log to evaluate
        
        Returns:
            Number of entries to drop from the head
        """
        if not self.policy:
            return 0
        
        to_trim = 0
        
        if self.policy in [RetentionPolicy.MAX_LEN, RetentionPolicy.BOTH]:
            to_trim = max(to_trim, len(log) - self.max_len)
        
        if self.policy in [RetentionPolicy.MIN_ID, RetentionPolicy.BOTH]:
            to_trim = max(to_trim, log.count_below(self.min_id))
        
        if to_trim:
            logger.debug(
                "Entries eligible for trimming",
                policy=self.policy.value,
                count=to_trim,
            )
        
        return to_trim
