import sys

from devsecflow.cli import main

sys.exit(main())
