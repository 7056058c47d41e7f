"""
Calendar Assistant — Entry Point.

`python main.py` serves the Slack bot; `python main.py --cli` starts the
terminal harness instead.
"""

import argparse
import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Slack calendar assistant")
    parser.add_argument("--cli", action="store_true", help="chat from the terminal instead of Slack")
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    if args.cli:
        from calendar_assistant.bot.cli import main as cli_main
        cli_main()
    else:
        from calendar_assistant.bot.slack_bot import main
        main()
