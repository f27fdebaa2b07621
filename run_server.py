#!/usr/bin/env python3
"""
SongSplit API Server Launcher
"""

import os
import sys

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from dotenv import load_dotenv  # noqa: E402

load_dotenv()

from api import run_server  # noqa: E402

if __name__ == '__main__':
    run_server()
