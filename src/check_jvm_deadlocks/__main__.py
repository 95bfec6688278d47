import sys

from check_jvm_deadlocks.cli import main

sys.exit(main())
