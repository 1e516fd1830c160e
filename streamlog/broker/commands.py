"""
Command interface over a broker.

Collaborators that speak some wire protocol hand the decoded command tokens
to CommandExecutor.execute() and get back plain Python values (strings,
integers, lists, dicts, None) ready to be encoded. Ids are always returned in
their ``"<time_ms>-<seq>"`` form.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from streamlog.broker.broker import Broker
from streamlog.broker.metadata import GroupInfo, LogInfo
from streamlog.consumer.dispatcher import Backlog, NewEntries
from streamlog.core.log.entry import Entry
from streamlog.errors import ValidationError
from streamlog.utils.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[List[str]], Awaitable[Any]]


def format_entry(entry: Entry) -> List[Any]:
    """Render an entry as ``[id, [k, v, ...]]`` (``[id, None]`` if trimmed)."""
    fields = None if entry.is_deleted() else entry.flat_fields()
    return [str(entry.id), fields]


def format_group(info: GroupInfo) -> Dict[str, Any]:
    """Render a group snapshot."""
    return {
        "name": info.name,
        "last-delivered-id": str(info.last_delivered_id),
        "pending": info.pending,
        "consumers": [
            {
                "name": consumer.name,
                "pending": consumer.pending,
                "idle": consumer.idle_ms,
                "inactive": consumer.inactive_ms,
            }
            for consumer in info.consumers
        ],
    }


def format_log(info: LogInfo) -> Dict[str, Any]:
    """Render a log snapshot."""
    return {
        "length": info.length,
        "last-generated-id": str(info.last_generated_id),
        "max-deleted-entry-id": str(info.max_deleted_id),
        "entries-added": info.entries_added,
        "groups": len(info.groups),
        "first-entry": format_entry(info.first_entry) if info.first_entry else None,
        "last-entry": format_entry(info.last_entry) if info.last_entry else None,
    }


def parse_int(token: str, what: str, minimum: Optional[int] = 0) -> int:
    """
    Parse an integer argument.

    Args:
        token: Raw token
        what: Argument name for the error message
        minimum: Smallest accepted value (None = no bound)

    Returns:
        Parsed integer

    Raises:
        ValidationError: If the token is not an integer in range
    """
    try:
        value = int(token)
    except (TypeError, ValueError):
        raise ValidationError(f"{what} is not an integer or out of range")

    if minimum is not None and value < minimum:
        raise ValidationError(f"{what} must be at least {minimum}")
    return value


class CommandExecutor:
    """
    Executes tokenized commands against a broker.

    Command names are case-insensitive. Structural failures raise
    StreamLogError subclasses; per-item misses in batch commands show up as
    partial results.
    """

    def __init__(self, broker: Broker):
        """
        Initialize executor.

        Args:
            broker: Broker to run commands against
        """
        self.broker = broker
        self._handlers: Dict[str, Tuple[int, Handler]] = {
            "APPEND": (3, self._append),
            "RANGE": (3, self._range),
            "REVRANGE": (3, self._rev_range),
            "LEN": (1, self._length),
            "TRIM": (3, self._trim),
            "CREATEGROUP": (3, self._create_group),
            "DELETEGROUP": (2, self._delete_group),
            "CREATECONSUMER": (3, self._create_consumer),
            "DELCONSUMER": (3, self._delete_consumer),
            "READGROUP": (4, self._read_group),
            "ACK": (3, self._ack),
            "PENDING": (2, self._pending),
            "CLAIM": (5, self._claim),
            "AUTOCLAIM": (5, self._auto_claim),
            "INFO": (1, self._info),
        }

    @property
    def commands(self) -> List[str]:
        """Supported command names."""
        return sorted(self._handlers)

    async def execute(self, tokens: Sequence[str]) -> Any:
        """
        Execute one command.

        Args:
            tokens: Command name followed by its arguments

        Returns:
            Command reply as plain Python values

        Raises:
            StreamLogError: On unknown commands, bad arity or any structural
                failure of the command itself
        """
        if not tokens:
            raise ValidationError("empty command")

        name = tokens[0].upper()
        entry = self._handlers.get(name)
        if entry is None:
            raise ValidationError(f"unknown command {tokens[0]!r}")

        min_args, handler = entry
        args = list(tokens[1:])
        if len(args) < min_args:
            raise ValidationError(f"wrong number of arguments for {name!r}")

        with structlog.contextvars.bound_contextvars(command=name):
            logger.debug("Executing command", args=len(args))
            return await handler(args)

    async def _append(self, args: List[str]) -> str:
        log_name = args[0]
        max_len = None
        min_id = None
        i = 1

        while i < len(args) and args[i].upper() in ("MAXLEN", "MINID"):
            if i + 1 >= len(args):
                raise ValidationError("syntax error")
            if args[i].upper() == "MAXLEN":
                max_len = parse_int(args[i + 1], "MAXLEN")
            else:
                min_id = args[i + 1]
            i += 2

        if i >= len(args):
            raise ValidationError("wrong number of arguments for 'APPEND'")

        entry_id = args[i]
        fields = args[i + 1:]
        new_id = await self.broker.append(
            log_name,
            fields,
            entry_id=entry_id,
            max_len=max_len,
            min_id=min_id,
        )
        return str(new_id)

    async def _range(self, args: List[str]) -> List[List[Any]]:
        limit = self._count_option(args[3:])
        entries = await self.broker.range(args[0], args[1], args[2], limit)
        return [format_entry(entry) for entry in entries]

    async def _rev_range(self, args: List[str]) -> List[List[Any]]:
        limit = self._count_option(args[3:])
        entries = await self.broker.rev_range(args[0], args[1], args[2], limit)
        return [format_entry(entry) for entry in entries]

    async def _length(self, args: List[str]) -> int:
        self._exact(args, 1, "LEN")
        return await self.broker.length(args[0])

    async def _trim(self, args: List[str]) -> int:
        self._exact(args, 3, "TRIM")
        strategy = args[1].upper()
        if strategy == "MAXLEN":
            return await self.broker.trim(args[0], retain_count=parse_int(args[2], "MAXLEN"))
        if strategy == "MINID":
            return await self.broker.trim(args[0], min_id=args[2])
        raise ValidationError("syntax error, TRIM needs MAXLEN or MINID")

    async def _create_group(self, args: List[str]) -> str:
        mkstream = False
        if len(args) == 4:
            if args[3].upper() != "MKSTREAM":
                raise ValidationError("syntax error")
            mkstream = True
        elif len(args) != 3:
            raise ValidationError("wrong number of arguments for 'CREATEGROUP'")

        await self.broker.create_group(args[0], args[1], args[2], mkstream=mkstream)
        return "OK"

    async def _delete_group(self, args: List[str]) -> int:
        self._exact(args, 2, "DELETEGROUP")
        await self.broker.delete_group(args[0], args[1])
        return 1

    async def _create_consumer(self, args: List[str]) -> int:
        self._exact(args, 3, "CREATECONSUMER")
        created = await self.broker.ensure_consumer(args[0], args[1], args[2])
        return 1 if created else 0

    async def _delete_consumer(self, args: List[str]) -> int:
        self._exact(args, 3, "DELCONSUMER")
        return await self.broker.delete_consumer(args[0], args[1], args[2])

    async def _read_group(self, args: List[str]) -> List[List[Any]]:
        log_name, group_name, consumer, mode_name = args[:4]
        rest = args[4:]
        mode_name = mode_name.upper()

        if mode_name == "NEW":
            options = self._options(rest, {"COUNT", "BLOCK"})
            count = options.get("COUNT")
            block = options.get("BLOCK")
            mode = NewEntries(
                count=parse_int(count, "COUNT") if count is not None else None,
                block_ms=parse_int(block, "BLOCK", minimum=None) if block is not None else None,
            )
        elif mode_name == "BACKLOG":
            if not rest:
                raise ValidationError("BACKLOG needs a starting id")
            options = self._options(rest[1:], {"COUNT"})
            count = options.get("COUNT")
            mode = Backlog(
                from_id=rest[0],
                count=parse_int(count, "COUNT") if count is not None else None,
            )
        else:
            raise ValidationError("read mode must be NEW or BACKLOG")

        entries = await self.broker.read_group(log_name, group_name, consumer, mode)
        return [format_entry(entry) for entry in entries]

    async def _ack(self, args: List[str]) -> int:
        return await self.broker.ack(args[0], args[1], *args[2:])

    async def _pending(self, args: List[str]) -> Any:
        log_name, group_name = args[:2]

        if len(args) == 2:
            overview = await self.broker.pending_overview(log_name, group_name)
            return [
                overview.count,
                str(overview.min_id) if overview.min_id else None,
                str(overview.max_id) if overview.max_id else None,
                [[owner, count] for owner, count in overview.consumers.items()],
            ]

        min_idle_ms = None
        consumer = None
        positional: List[str] = []
        rest = args[2:]
        i = 0

        while i < len(rest):
            keyword = rest[i].upper()
            if keyword in ("IDLE", "CONSUMER") and i + 1 < len(rest):
                if keyword == "IDLE":
                    min_idle_ms = parse_int(rest[i + 1], "IDLE")
                else:
                    consumer = rest[i + 1]
                i += 2
            else:
                positional.append(rest[i])
                i += 1

        if positional and len(positional) != 3:
            raise ValidationError("PENDING range needs start, end and count")

        start, end, limit = "-", "+", None
        if positional:
            start, end = positional[0], positional[1]
            limit = parse_int(positional[2], "count")

        rows = await self.broker.pending(
            log_name,
            group_name,
            min_id=start,
            max_id=end,
            limit=limit,
            min_idle_ms=min_idle_ms,
            consumer=consumer,
        )
        return [
            [str(row.entry_id), row.owner, row.idle_ms, row.delivery_count]
            for row in rows
        ]

    async def _claim(self, args: List[str]) -> List[Any]:
        log_name, group_name, consumer = args[:3]
        min_idle_ms = parse_int(args[3], "min-idle-time")

        ids: List[str] = []
        just_id = False
        force = False
        for token in args[4:]:
            flag = token.upper()
            if flag == "JUSTID":
                just_id = True
            elif flag == "FORCE":
                force = True
            else:
                ids.append(token)

        if not ids:
            raise ValidationError("wrong number of arguments for 'CLAIM'")

        claimed = await self.broker.claim(
            log_name,
            group_name,
            consumer,
            min_idle_ms,
            *ids,
            just_id=just_id,
            force=force,
        )
        if just_id:
            return [str(entry_id) for entry_id in claimed]
        return [format_entry(entry) for entry in claimed]

    async def _auto_claim(self, args: List[str]) -> List[Any]:
        log_name, group_name, consumer = args[:3]
        min_idle_ms = parse_int(args[3], "min-idle-time")
        start_id = args[4]

        rest = args[5:]
        just_id = any(token.upper() == "JUSTID" for token in rest)
        options = self._options([t for t in rest if t.upper() != "JUSTID"], {"COUNT"})
        count = options.get("COUNT")

        result = await self.broker.auto_claim(
            log_name,
            group_name,
            consumer,
            min_idle_ms,
            start_id=start_id,
            count=parse_int(count, "COUNT", minimum=1) if count is not None else None,
            just_id=just_id,
        )

        if just_id:
            claimed: List[Any] = [str(entry.id) for entry in result.entries]
        else:
            claimed = [format_entry(entry) for entry in result.entries]

        return [
            str(result.next_start_id),
            claimed,
            [str(entry_id) for entry_id in result.missing_ids],
        ]

    async def _info(self, args: List[str]) -> Dict[str, Any]:
        if len(args) > 2:
            raise ValidationError("wrong number of arguments for 'INFO'")

        if len(args) == 2:
            return format_group(await self.broker.info(args[0], args[1]))

        info = await self.broker.info(args[0])
        rendered = format_log(info)
        rendered["group-details"] = [format_group(group) for group in info.groups]
        return rendered

    def _count_option(self, rest: List[str]) -> Optional[int]:
        count = self._options(rest, {"COUNT"}).get("COUNT")
        return parse_int(count, "COUNT") if count is not None else None

    @staticmethod
    def _options(rest: List[str], allowed: set) -> Dict[str, str]:
        if len(rest) % 2 != 0:
            raise ValidationError("syntax error")

        options: Dict[str, str] = {}
        for i in range(0, len(rest), 2):
            keyword = rest[i].upper()
            if keyword not in allowed:
                raise ValidationError(f"syntax error near {rest[i]!r}")
            options[keyword] = rest[i + 1]
        return options

    @staticmethod
    def _exact(args: List[str], expected: int, name: str) -> None:
        if len(args) != expected:
            raise ValidationError(f"wrong number of arguments for {name!r}")
