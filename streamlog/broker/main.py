#!/usr/bin/env python3
"""
Command shell for a streamlog broker.

Reads one command per line from stdin, runs it against an in-process broker
and prints the reply. Blocking reads hold the shell until they return.

Usage:
    streamlog --log-level DEBUG
    echo "APPEND orders * item A" | python -m streamlog.broker.main
"""

import argparse
import asyncio
import shlex
import sys
from typing import Any, List, Optional, TextIO

from streamlog.broker.broker import Broker, BrokerConfig
from streamlog.broker.commands import CommandExecutor
from streamlog.errors import StreamLogError
from streamlog.utils.config import get_config
from streamlog.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='streamlog - in-memory stream log with consumer groups'
    )

    parser.add_argument(
        '--broker-id',
        type=str,
        default='streamlog',
        help='Broker identifier (default: streamlog)'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='YAML configuration file'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: from configuration)'
    )

    parser.add_argument(
        '--log-format',
        type=str,
        default=None,
        choices=['json', 'console'],
        help='Log format (default: from configuration)'
    )

    return parser.parse_args(argv)


def render_reply(reply: Any, indent: int = 0) -> str:
    """
    Render a command reply for the terminal.

    Args:
        reply: Plain Python reply value
        indent: Current nesting depth

    Returns:
        Printable text
    """
    pad = "  " * indent

    if reply is None:
        return f"{pad}(nil)"
    if isinstance(reply, bool):
        return f"{pad}(integer) {int(reply)}"
    if isinstance(reply, int):
        return f"{pad}(integer) {reply}"
    if isinstance(reply, str):
        return f"{pad}{reply}" if reply == "OK" else f'{pad}"{reply}"'
    if isinstance(reply, dict):
        if not reply:
            return f"{pad}(empty map)"
        lines = []
        for key, value in reply.items():
            lines.append(f"{pad}{key}:")
            lines.append(render_reply(value, indent + 1))
        return "\n".join(lines)
    if isinstance(reply, (list, tuple)):
        if not reply:
            return f"{pad}(empty list)"
        lines = []
        for position, item in enumerate(reply, start=1):
            lines.append(f"{pad}{position})")
            lines.append(render_reply(item, indent + 1))
        return "\n".join(lines)
    return f"{pad}{reply}"


async def run_shell(
    executor: CommandExecutor,
    stdin: TextIO = sys.stdin,
    stdout: TextIO = sys.stdout,
) -> int:
    """
    Run the read-execute-print loop until EOF or QUIT.

    Args:
        executor: Command executor
        stdin: Input stream
        stdout: Output stream

    Returns:
        Number of commands that failed
    """
    loop = asyncio.get_running_loop()
    failures = 0

    while True:
        # stdin reads block, so keep them off the event loop
        line = await loop.run_in_executor(None, stdin.readline)
        if not line:
            break

        try:
            tokens = shlex.split(line)
        except ValueError as e:
            print(f"(error) INVALID {e}", file=stdout)
            failures += 1
            continue

        if not tokens:
            continue
        if tokens[0].upper() in ("QUIT", "EXIT"):
            break

        try:
            reply = await executor.execute(tokens)
        except StreamLogError as e:
            print(f"(error) {e}", file=stdout)
            failures += 1
            continue

        print(render_reply(reply), file=stdout)
        stdout.flush()

    return failures


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = get_config(args.config)
        if args.log_level:
            config.set("logging.level", args.log_level)
        if args.log_format:
            config.set("logging.format", args.log_format)

        configure_logging(
            log_level=config.get("logging.level", "INFO"),
            log_format=config.get("logging.format", "console"),
            log_output=config.get("logging.output", "stderr"),
        )
    except StreamLogError as e:
        print(f"streamlog: {e}", file=sys.stderr)
        return 2

    broker = Broker(
        broker_id=args.broker_id,
        config=BrokerConfig.from_config(config),
    )
    executor = CommandExecutor(broker)

    logger.info("Starting streamlog shell", broker_id=args.broker_id)

    try:
        failures = asyncio.run(run_shell(executor, sys.stdin, sys.stdout))
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
        return 130

    logger.info("Shell stopped", stats=broker.get_stats(), failures=failures)
    return 0


if __name__ == '__main__':
    sys.exit(main())
