import sys

from knytt_render.cli import main

sys.exit(main())
