"""Allow ``python -m greenlight``."""

from greenlight.cli import main

if __name__ == "__main__":
    main()
