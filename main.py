"""
Retro Hub - Backend Entry Point
Loopback IPC daemon serving the ROM library to the presentation process
"""

import sys

from retro_hub.daemon import main


if __name__ == "__main__":
    sys.exit(main())
