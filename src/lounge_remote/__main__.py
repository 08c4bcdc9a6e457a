"""Allow ``python -m lounge_remote``."""

from .cli import main

if __name__ == "__main__":
    main()
