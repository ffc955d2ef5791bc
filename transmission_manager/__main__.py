import sys

from transmission_manager.main import main

sys.exit(main())
