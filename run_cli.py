#!/usr/bin/env python3
"""
Convenient entry point for the Ghostwriter CLI.

Usage:
    python run_cli.py [-y] [-d] [-p PROVIDER] [-m MODEL] [-C DIR] [--no-mcp]
"""
import sys
from pathlib import Path

# Add project root to Python path
root_dir = Path(__file__).parent
sys.path.insert(0, str(root_dir))

from ghostwriter.clients.cli.main import run

if __name__ == "__main__":
    run()
