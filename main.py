#!/usr/bin/env python3
"""
Otter Order Printer Bridge

Receives print jobs over HTTP on port 3838 and forwards the raw bytes to a
network receipt printer over TCP.
"""

import sys

from otter_bridge.cli import main

if __name__ == "__main__":
    sys.exit(main())
