"""
__main__.py

Allows running the analyzer as a module:
    python3 -m trace_stats --help
"""

import sys
from trace_stats.cli import main

if __name__ == "__main__":
    sys.exit(main())
