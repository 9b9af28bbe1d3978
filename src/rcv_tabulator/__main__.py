import sys

from rcv_tabulator.cli import main

sys.exit(main())
