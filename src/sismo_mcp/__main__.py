"""Entry point for sismo-mcp server."""

import argparse
import asyncio
import logging
import os
import sys

from .config import SismoConfig, parse_git_commands, parse_timeout
from .server import create_server


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Sismo MCP Server - Build git repositories via MCP"
    )
    parser.add_argument(
        "--build-dir",
        type=str,
        default=None,
        help="Root directory for working copies (env: SISMO_BUILD_DIR).",
    )
    parser.add_argument(
        "--git-path",
        type=str,
        default=None,
        help="Path to the git binary (env: SISMO_GIT_PATH).",
    )
    parser.add_argument(
        "--timeout",
        type=str,
        default=None,
        help="Timeout in seconds for every git command and build script "
        "(env: SISMO_TIMEOUT, default 3600).",
    )
    parser.add_argument(
        "--git-cmds",
        type=str,
        default=None,
        help="JSON object overriding git command templates, e.g. "
        '\'{"fetch": "fetch origin --prune"}\' (env: SISMO_GIT_CMDS).',
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> SismoConfig:
    """Merge command line arguments over environment configuration."""
    git_commands = None
    if args.git_cmds is not None:
        git_commands = parse_git_commands(args.git_cmds, "--git-cmds")
    timeout = None
    if args.timeout is not None:
        timeout = parse_timeout(args.timeout, "--timeout")
    return SismoConfig.from_env().with_overrides(
        build_dir=args.build_dir,
        git_path=args.git_path,
        timeout=timeout,
        git_commands=git_commands,
    )


async def main() -> None:
    """Main entry point."""
    configure_logging()
    logger = logging.getLogger(__name__)

    args = parse_args()
    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logger.info(f"Starting Sismo MCP Server (build dir: {config.build_dir})...")

    mcp = create_server(config)

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        logger.info("Server stopped")


def run() -> None:
    """Run the server."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
