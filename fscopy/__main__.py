"""Allow ``python -m fscopy``."""

from fscopy.cli import main

if __name__ == "__main__":
    main()
