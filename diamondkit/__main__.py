import sys

from diamondkit.cli import main

sys.exit(main())
