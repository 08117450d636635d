#!/usr/bin/env python3
"""
Entry point for running the launcher as a module.

Usage:
    python -m hellas <command> [options]
"""

from .store.cli import main

if __name__ == "__main__":
    main()
