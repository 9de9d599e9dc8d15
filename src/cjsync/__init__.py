"""
cjsync — configuration sync and backup engine for the ChengJing new tab.

Pack your settings into a QR code. Back everything up to a file.
Merge a backup without losing what you already have. Roll back
when something goes wrong.
"""

import os

__version__ = "0.1.0"
__author__ = "ChengJing"

APP_NAME = "ChengJing"
SYNC_HOME = os.environ.get("CJSYNC_HOME", "~/.cjsync")
