import sys

from core.server import main

sys.exit(main())
