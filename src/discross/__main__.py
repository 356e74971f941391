"""
=============================================================================
DISCROSS CLI ENTRY POINT
=============================================================================

Command-line access to a Discross relay. Every command logs in first,
runs one operation and prints the result.

=============================================================================
USAGE
=============================================================================

    # Credentials from DISCROSS.CFG
    python -m discross --config DISCROSS.CFG servers

    # Channels of one server
    python -m discross channels 123456789012345678

    # Last messages in a channel
    python -m discross messages 234567890123456789

    # Post a message
    python -m discross send 234567890123456789 "hello from the shell"

    # Everything from the environment
    DISCROSS_HOST=discross.net DISCROSS_USERNAME=me DISCROSS_PASSWORD=pw \\
        python -m discross servers

Settings are layered: defaults, then DISCROSS_* environment variables,
then the config file, then command-line flags.

=============================================================================
EXIT CODES
=============================================================================

    0   success
    1   a DiscrossError (the message is printed to stderr)
    2   bad arguments or configuration

=============================================================================
"""

import argparse
import logging
import sys

from . import __version__
from .client import DiscrossClient
from .config import ClientConfig
from .errors import DiscrossError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="discross",
        description="Command-line client for a Discross web relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m discross --config DISCROSS.CFG servers
  python -m discross channels 123456789012345678
  python -m discross messages 234567890123456789
  python -m discross send 234567890123456789 "hello"
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTION ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--config", "-c",
        default=None,
        help="DISCROSS.CFG style file with HOST, PORT, USERNAME, PASSWORD"
    )
    parser.add_argument("--host", "-H", default=None, help="Relay host")
    parser.add_argument("--port", "-p", type=int, default=None, help="Relay port (default: 4000)")
    parser.add_argument("--user", "-u", default=None, help="Login name")
    parser.add_argument("--password", "-P", default=None, help="Login password")
    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=None,
        help="Page inactivity timeout in seconds (default: 10)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"discross {__version__}"
    )

    # ─────────────────────────────────────────────────────────────────────
    # COMMANDS
    # ─────────────────────────────────────────────────────────────────────

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("servers", help="List servers")

    channels = commands.add_parser("channels", help="List channels of a server")
    channels.add_argument("server_id")

    messages = commands.add_parser("messages", help="Show recent messages of a channel")
    messages.add_argument("channel_id")

    send = commands.add_parser("send", help="Send a message to a channel")
    send.add_argument("channel_id")
    send.add_argument("text")

    return parser


def load_config(args: argparse.Namespace) -> ClientConfig:
    """Layer environment, config file and flags into one ClientConfig."""
    config = ClientConfig.from_env()
    if args.config:
        config = ClientConfig.from_file(args.config, base=config)
    config = config.merged(
        host=args.host,
        port=args.port,
        username=args.user,
        password=args.password,
        timeout=args.timeout,
        log_level=args.log_level,
    )
    config.validate()
    return config


def run_command(client: DiscrossClient, args: argparse.Namespace) -> None:
    if args.command == "servers":
        for server in client.fetch_servers():
            print(f"{server.id}  {server.display_name}")

    elif args.command == "channels":
        for channel in client.fetch_channels(args.server_id):
            print(f"{channel.id}  #{channel.display_name}")

    elif args.command == "messages":
        for message in client.fetch_messages(args.channel_id):
            print(f"<{message.username}> {message.content}")

    elif args.command == "send":
        client.send_message(args.channel_id, args.text)
        print("Sent.")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except (DiscrossError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if not config.is_complete:
        print("Error: need host, username and password (--config or flags)", file=sys.stderr)
        return 2

    client = DiscrossClient(config)

    try:
        client.login()
        run_command(client, args)
    except DiscrossError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        client.shutdown()

    return 0


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    sys.exit(main())
