import sys

from chaos_vfs.cli import main

sys.exit(main())
