import sys

from gh_notif_bridge.main import main

sys.exit(main())
