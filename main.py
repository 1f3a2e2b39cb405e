#!/usr/bin/env python3
"""
Trivia Quiz Bot entry point.

    python main.py [--config PATH] [--log-level LEVEL]

The config file is taken from --config, then TRIVIA_BOT_CONFIG, then
./config.json. DISCORD_BOT_TOKEN, when set, replaces bot.token from the file.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from trivia_bot.bot import run_bot, setup_logging

DEFAULT_CONFIG_PATH = "config.json"
TOKEN_PLACEHOLDER = "YOUR_DISCORD_BOT_TOKEN_HERE"


class StartupError(Exception):
    """Raised when the bot cannot be configured from its file and environment."""

    def __init__(self, message: str, hints: Optional[List[str]] = None):
        super().__init__(message)
        self.hints = hints or []


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Discord trivia quiz bot")
    parser.add_argument('--config', type=str, default=None,
                        help=f"Path to the JSON config file (default: $TRIVIA_BOT_CONFIG or {DEFAULT_CONFIG_PATH})")
    parser.add_argument('--log-level', type=str, default=None,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help="Override logging.level from the config file")
    return parser.parse_args(argv)


def resolve_config_path(cli_path: Optional[str] = None) -> Path:
    return Path(cli_path or os.getenv('TRIVIA_BOT_CONFIG') or DEFAULT_CONFIG_PATH)


def read_config(config_path: Path) -> Dict[str, Any]:
    """Parse the config file; it must hold a JSON object."""
    if not config_path.is_file():
        raise StartupError(
            f"config file {config_path} not found",
            ["Copy config.json, or point --config / TRIVIA_BOT_CONFIG at your file."]
        )

    try:
        config = json.loads(config_path.read_text(encoding='utf-8'))
    except json.JSONDecodeError as e:
        raise StartupError(f"invalid JSON in {config_path}: {e}") from e
    except OSError as e:
        raise StartupError(f"could not read {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise StartupError(f"{config_path} must contain a JSON object")
    return config


def resolve_token(config: Dict[str, Any]) -> str:
    token = os.getenv('DISCORD_BOT_TOKEN') or config.get('bot', {}).get('token')
    if not token or token == TOKEN_PLACEHOLDER:
        raise StartupError(
            "Discord bot token not configured",
            ["Set the DISCORD_BOT_TOKEN environment variable,",
             "or fill in bot.token in the config file."]
        )
    return token


def configure_logging(config: Dict[str, Any], level_name: Optional[str] = None) -> None:
    log_config = config.get('logging', {})
    level_name = (level_name or log_config.get('level', 'INFO')).upper()
    setup_logging(log_config.get('log_directory', './logs/'), getattr(logging, level_name, logging.INFO))


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = read_config(resolve_config_path(args.config))
        token = resolve_token(config)
    except StartupError as e:
        print(f"❌ Error: {e}")
        for hint in e.hints:
            print(f"   {hint}")
        return 1

    configure_logging(config, args.log_level)

    print("🤖 Starting Trivia Quiz Bot...")
    try:
        asyncio.run(run_bot(token, config))
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
