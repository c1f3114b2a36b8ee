"""Launcher for savefile without installing the package.

Usage:
    python run.py watch -n game
    python run.py backup list -n game
    python run.py serve --port 5000
"""

import sys

from savefile.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
