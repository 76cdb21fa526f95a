#!/usr/bin/env python3
"""
dupscan Entry Point

This script provides a convenient entry point for running dupscan
without requiring package installation.

Usage:
    python3 dupscan.py [options] [path]

This is equivalent to:
    python3 -m dupscan.cli.main [options] [path]
"""

import sys
import os

# Add the current directory to Python path so we can import dupscan
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

if __name__ == "__main__":
    from dupscan.cli.main import main
    sys.exit(main())
