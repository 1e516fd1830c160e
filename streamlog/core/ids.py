"""
Entry identifiers.

An identifier is a ``(time_ms, seq)`` pair compared lexicographically and
serialized as ``"<time_ms>-<seq>"``. The allocator hands out strictly
increasing identifiers per log even when the clock stalls or moves backwards.
"""

from dataclasses import dataclass
from typing import Optional

from streamlog.errors import IdentifierOverflowError, ValidationError
from streamlog.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SEQUENCE_BITS = 64
MAX_TIME_MS = (1 << 64) - 1

MIN_SENTINEL = "-"
MAX_SENTINEL = "+"
NEW_ONLY = "$"
AUTO = "*"
EXCLUSIVE_PREFIX = "("


@dataclass(frozen=True, order=True)
class EntryID:
    """
    Composite entry identifier.

    Attributes:
        time_ms: Millisecond timestamp component
        seq: Sequence number within the millisecond
    """
    time_ms: int
    seq: int

    def __str__(self) -> str:
        return f"{self.time_ms}-{self.seq}"

    def is_zero(self) -> bool:
        """Check whether this is the ``0-0`` minimum."""
        return self.time_ms == 0 and self.seq == 0

    def successor(self, max_seq: int) -> Optional["EntryID"]:
        """
        Get the smallest identifier greater than this one.

        Args:
            max_seq: Largest allowed sequence value

        Returns:
            Next identifier, or None if this is the maximum
        """
        if self.seq < max_seq:
            return EntryID(self.time_ms, self.seq + 1)
        if self.time_ms < MAX_TIME_MS:
            return EntryID(self.time_ms + 1, 0)
        return None

    def predecessor(self, max_seq: int) -> Optional["EntryID"]:
        """
        Get the largest identifier smaller than this one.

        Args:
            max_seq: Largest allowed sequence value

        Returns:
            Previous identifier, or None if this is ``0-0``
        """
        if self.seq > 0:
            return EntryID(self.time_ms, self.seq - 1)
        if self.time_ms > 0:
            return EntryID(self.time_ms - 1, max_seq)
        return None


ZERO_ID = EntryID(0, 0)


def max_seq_for(sequence_bits: int) -> int:
    """Largest sequence value representable in ``sequence_bits`` bits."""
    if sequence_bits < 1:
        raise ValidationError("sequence width must be at least one bit")
    return (1 << sequence_bits) - 1


def _parse_component(token: str, value: str) -> int:
    if not value.isascii() or not value.isdigit():
        raise ValidationError(f"Invalid stream ID specified: {token!r}")
    return int(value)


def parse_id(token: str, max_seq: int = max_seq_for(DEFAULT_SEQUENCE_BITS)) -> EntryID:
    """
    Parse a complete ``"<time_ms>-<seq>"`` identifier.

    A bare ``"<time_ms>"`` is accepted and means ``"<time_ms>-0"``.

    Args:
        token: Serialized identifier
        max_seq: Largest allowed sequence value

    Returns:
        Parsed identifier

    Raises:
        ValidationError: If the token is malformed or out of range
    """
    if isinstance(token, EntryID):
        return token

    time_part, sep, seq_part = str(token).partition("-")
    time_ms = _parse_component(token, time_part)
    seq = _parse_component(token, seq_part) if sep else 0

    if time_ms > MAX_TIME_MS or seq > max_seq:
        raise ValidationError(f"Invalid stream ID specified: {token!r}")

    return EntryID(time_ms, seq)


def parse_range_bound(
    token: str,
    is_start: bool,
    max_seq: int = max_seq_for(DEFAULT_SEQUENCE_BITS),
) -> Optional[EntryID]:
    """
    Parse one end of a range query.

    Accepts the ``-`` and ``+`` sentinels, complete ids, bare millisecond
    values (expanded to the first or last id of that millisecond) and
    exclusive bounds prefixed with ``(``.

    Args:
        token: Range bound token
        is_start: True for the lower bound, False for the upper bound
        max_seq: Largest allowed sequence value

    Returns:
        Inclusive identifier bound, or None when an exclusive bound leaves
        nothing to match

    Raises:
        ValidationError: If the token is malformed
    """
    if isinstance(token, EntryID):
        return token

    token = str(token)

    if token == MIN_SENTINEL:
        return ZERO_ID
    if token == MAX_SENTINEL:
        return EntryID(MAX_TIME_MS, max_seq)

    exclusive = token.startswith(EXCLUSIVE_PREFIX)
    if exclusive:
        token = token[1:]
        if token in (MIN_SENTINEL, MAX_SENTINEL):
            raise ValidationError("invalid exclusive range bound")

    if "-" in token:
        bound = parse_id(token, max_seq)
    else:
        time_ms = _parse_component(token, token)
        bound = EntryID(time_ms, 0 if is_start else max_seq)

    if not exclusive:
        return bound

    return bound.successor(max_seq) if is_start else bound.predecessor(max_seq)


class IdentifierAllocator:
    """
    Allocates strictly increasing identifiers for one log.

    Attributes:
        last_id: Last identifier handed out or accepted
        max_seq: Largest sequence value for this log
    """

    def __init__(
        self,
        last_id: EntryID = ZERO_ID,
        sequence_bits: int = DEFAULT_SEQUENCE_BITS,
    ):
        """
        Initialize allocator.

        Args:
            last_id: Identifier to continue after
            sequence_bits: Width of the sequence component
        """
        self.last_id = last_id
        self.max_seq = max_seq_for(sequence_bits)

    def next(self, now_ms: int) -> EntryID:
        """
        Allocate the next identifier.

        Args:
            now_ms: Current wall-clock time in milliseconds

        Returns:
            Identifier strictly greater than every previous one

        Raises:
            IdentifierOverflowError: If the sequence is exhausted for the
                current millisecond
        """
        if now_ms > self.last_id.time_ms:
            entry_id = EntryID(now_ms, 0)
        else:
            if self.last_id.seq >= self.max_seq:
                logger.warning(
                    "Sequence exhausted within millisecond",
                    time_ms=self.last_id.time_ms,
                    max_seq=self.max_seq,
                )
                raise IdentifierOverflowError(
                    f"sequence exhausted for millisecond {self.last_id.time_ms}"
                )
            entry_id = EntryID(self.last_id.time_ms, self.last_id.seq + 1)

        self.last_id = entry_id
        return entry_id

    def accept(self, token: str) -> EntryID:
        """
        Validate and record a caller-supplied identifier.

        ``"<time_ms>-<seq>"`` must be greater than the last identifier;
        ``"<time_ms>-*"`` allocates the next sequence within that millisecond.

        Args:
            token: Explicit identifier

        Returns:
            Accepted identifier

        Raises:
            ValidationError: If the id is malformed, ``0-0``, or not greater
                than the last identifier
            IdentifierOverflowError: If ``"<time_ms>-*"`` exhausts the sequence
        """
        time_part, sep, seq_part = str(token).partition("-")

        if sep and seq_part == AUTO:
            time_ms = _parse_component(token, time_part)
            if time_ms > MAX_TIME_MS:
                raise ValidationError(f"Invalid stream ID specified: {token!r}")
            if time_ms < self.last_id.time_ms:
                raise ValidationError(
                    "The ID specified is equal or smaller than the target stream top item"
                )
            if time_ms == self.last_id.time_ms:
                if self.last_id.seq >= self.max_seq:
                    raise IdentifierOverflowError(
                        f"sequence exhausted for millisecond {time_ms}"
                    )
                entry_id = EntryID(time_ms, self.last_id.seq + 1)
            else:
                entry_id = EntryID(time_ms, 0)
        else:
            entry_id = parse_id(token, self.max_seq)
            if entry_id.is_zero():
                raise ValidationError("The ID specified must be greater than 0-0")
            if entry_id <= self.last_id:
                raise ValidationError(
                    "The ID specified is equal or smaller than the target stream top item"
                )

        self.last_id = entry_id
        return entry_id

