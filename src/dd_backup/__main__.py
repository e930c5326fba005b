"""dd-backup: dd_backup/__main__.py.

Image block devices with dd onto filesystems identified by UUID,
keeping a configurable number of dated copies.
"""

import sys

from .cli.dispatcher import main

if __name__ == "__main__":
    sys.exit(main())
