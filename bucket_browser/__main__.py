"""Module entry point for the bucket browser command-line shell."""
import sys

from .cli import main


if __name__ == "__main__":
    sys.exit(main())
