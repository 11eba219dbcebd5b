import sys

from depotpack import main

sys.exit(main())
