#!/usr/bin/env python3
"""
DiskReclaim Entry Point

This script provides a convenient entry point for running DiskReclaim
without requiring package installation.

Usage:
    python3 reclaim.py [options]

This is equivalent to:
    python3 -m diskreclaim.cli.main [options]
"""

import sys
import os

# Add the current directory to Python path so we can import diskreclaim
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

if __name__ == "__main__":
    from diskreclaim.cli.main import main
    sys.exit(main())
