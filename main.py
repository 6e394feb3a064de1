#!/usr/bin/env python3
"""
VPN Orchestrator - connect, disconnect and watch a VPN tunnel
"""

import sys
import signal

from vpn_orchestrator.cli.interface import main


def signal_handler(signum, frame):
    """Handle termination signals gracefully"""
    print(f"\nReceived signal {signum}, shutting down...")
    sys.exit(0)


if __name__ == "__main__":
    signal.signal(signal.SIGTERM, signal_handler)
    main()
