"""
Entry point for running the indexer as a module.

Usage:
    python -m stela_indexer
"""

from stela_indexer.cli import main

if __name__ == "__main__":
    main()
