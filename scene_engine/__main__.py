"""Package entry point for ``python -m scene_engine``.

WHY: Operators render a scene from a request file with
``python -m scene_engine render request.json``. Python's ``-m`` flag
looks for ``__main__.py`` inside the package and executes it.

HOW: Delegates straight to the CLI's main() and exits with its code.
"""

import sys

from scene_engine.cli import main

if __name__ == "__main__":
    sys.exit(main())
