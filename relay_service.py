#!/usr/bin/env python3
"""Start the SFTP relay service from the working directory."""

from __future__ import annotations

import sys

from sftp_relay.main import main


if __name__ == "__main__":
    sys.exit(main())
