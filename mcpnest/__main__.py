"""Allow ``python -m mcpnest``."""

import sys

from .cli import main

sys.exit(main())
