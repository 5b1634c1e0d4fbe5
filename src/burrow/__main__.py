"""Main entry point dispatcher for burrow commands."""

import sys


def main():
    """Point at the real entry points."""
    print("Use 'burrow-agent' (or 'python -m burrow.agent') to run the agent")
    print("Use 'burrowctl' (or 'python -m burrow.cli') for the command-line interface")
    sys.exit(1)


if __name__ == "__main__":
    main()
