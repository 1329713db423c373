import sys

from scenestore.cli import main

sys.exit(main())
