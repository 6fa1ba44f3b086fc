import sys

from tyron.cli import main

sys.exit(main())
