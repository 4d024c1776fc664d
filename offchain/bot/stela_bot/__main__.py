"""
Entry point for running the bot as a module.

Usage:
    python -m stela_bot
"""

from stela_bot.cli import main

if __name__ == "__main__":
    main()
