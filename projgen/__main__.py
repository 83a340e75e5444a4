"""Allow ``python -m projgen``."""

from projgen.cli import main

main()
