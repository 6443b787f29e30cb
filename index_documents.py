"""CLI shim -- delegates to docindex.cli.main().

Usage:
    python index_documents.py --local-dir ./documents --rebuild-index
    python index_documents.py --search invoice
"""

import sys

from docindex.cli import main

if __name__ == "__main__":
    sys.exit(main())
