import sys

from cron_keeper.cli.main import main

sys.exit(main())
