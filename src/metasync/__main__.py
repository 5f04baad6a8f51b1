"""Entry point for python -m metasync."""

import sys

from metasync.cli import main

sys.exit(main())
