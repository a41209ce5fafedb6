# Safekeep - Main Entry Point
#
#   python -m safekeep <command>

from .cli import main

if __name__ == "__main__":
    main()
