"""
Main entry point for running repo-cloak as a module.

Usage:
    python -m repocloak <command> [options]
"""

from .cli import main
import sys

if __name__ == "__main__":
    sys.exit(main())
