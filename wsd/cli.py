from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

import click

from . import __version__
from .console import Console
from .errors import ConnectionError
from .models import DEFAULT_BUF_SIZE, DEFAULT_ORIGIN, DEFAULT_URL, SessionConfig
from .session import Session, SessionResult

log = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"

CONTEXT_SETTINGS = {"help_option_names": ["-help", "--help", "-h"]}


async def _run(session: Session):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGHUP, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, session.request_shutdown)
        except (NotImplementedError, RuntimeError):
            # Only available on the main thread of a Unix event loop.
            pass
    return await session.run()


@click.command(context_settings=CONTEXT_SETTINGS)
@click.option("-origin", "--origin", default=DEFAULT_ORIGIN, show_default=True,
              help="origin of WebSocket client")
@click.option("-url", "--url", default=DEFAULT_URL, show_default=True,
              help="WebSocket server address to connect to")
@click.option("-protocol", "--protocol", default="", help="WebSocket subprotocol")
@click.option("-userAgent", "--user-agent", "user_agent", default="", help="User-Agent header")
@click.option("-insecureSkipVerify", "--insecure-skip-verify", "insecure_skip_verify",
              is_flag=True, help="Skip TLS certificate verification")
@click.option("-bufSize", "--buf-size", "buf_size", type=click.IntRange(min=1),
              default=DEFAULT_BUF_SIZE, show_default=True, help="Inbound messages buffer size")
@click.option("-raw", "--raw", is_flag=True,
              help="Don't format the messages received and don't launch an interactive shell")
@click.option("-verbose", "--verbose", is_flag=True, help="Log debug information to stderr")
@click.version_option(__version__, "-version", "--version", prog_name="wsd",
                      message="%(prog)s version %(version)s",
                      help="Display version number")
def main(
    origin: str,
    url: str,
    protocol: str,
    user_agent: str,
    insecure_skip_verify: bool,
    buf_size: int,
    raw: bool,
    verbose: bool,
) -> None:
    """Interactive WebSocket client: send stdin lines, print what comes back."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    config = SessionConfig(
        url=url,
        origin=origin,
        protocol=protocol,
        user_agent=user_agent,
        insecure_skip_verify=insecure_skip_verify,
        buf_size=buf_size,
        raw=raw,
    )
    console = Console(raw=raw)
    session = Session(config, sys.stdin, console)

    try:
        result = asyncio.run(_run(session))
    except ConnectionError as exc:
        console.fatal(exc)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)

    log.debug("session ended: %s", result.value)
    if result is SessionResult.OUTPUT_CLOSED:
        # Keep the interpreter from flushing into the closed pipe at exit.
        devnull = os.open(os.devnull, os.O_WRONLY)
        try:
            os.dup2(devnull, sys.stdout.fileno())
        except OSError:
            pass
        finally:
            os.close(devnull)
        sys.exit(1)
