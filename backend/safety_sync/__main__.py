import sys

from safety_sync.cli import main

sys.exit(main())
