"""Entry point for running forkkeeper via python -m forkkeeper"""

from .cli import main

if __name__ == "__main__":
    main()
