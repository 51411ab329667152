"""Run the sven daemon with ``python -m sven.daemon``."""

from sven.daemon.server import main

if __name__ == "__main__":
    main()
