import sys

from release_pilot.cli import main

sys.exit(main())
