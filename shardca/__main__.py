import sys

from shardca.cli import main

sys.exit(main())
