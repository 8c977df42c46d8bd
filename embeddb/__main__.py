import sys

from embeddb.main import main

sys.exit(main())
