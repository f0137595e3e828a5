"""Allow ``python -m depsync``."""

from depsync.cli import main

main()
