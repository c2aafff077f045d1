"""Entry point for the Trellis CLI.

This module serves as the main entry point when running the trellis package
directly with ``python -m trellis``.
"""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
