from __future__ import annotations

import argparse
import sys

from .errors import ConfigError
from .http_server import main as http_main
from .mcp_server import main as stdio_main


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="askexpert",
        description="MCP server that forwards questions (and images) to an OpenAI-compatible expert model.",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser(
        "stdio",
        help="Run the MCP server over stdio (default). The API key is read from ASK_EXPERT_API_KEY.",
    )

    http_parser = subparsers.add_parser(
        "http",
        help="Run the streamable-HTTP MCP server. Clients send their API key as a Bearer token.",
    )
    http_parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    http_parser.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        if args.command in (None, "stdio"):
            stdio_main()
            return
        if args.command == "http":
            http_main(host=args.host, port=args.port)
            return
    except ConfigError as exc:
        print(f"askexpert: configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
