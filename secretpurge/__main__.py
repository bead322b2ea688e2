"""
Main entry point for running secretpurge as a module.

Usage:
    python -m secretpurge <command> [options]
"""

from .cli import main
import sys

if __name__ == "__main__":
    sys.exit(main())
