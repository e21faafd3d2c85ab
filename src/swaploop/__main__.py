"""Allow `python -m swaploop`."""

import sys

from swaploop.main import main

sys.exit(main())
