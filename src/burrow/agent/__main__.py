"""Agent entry point for running the burrow agent."""

import asyncio
import sys

from burrow.agent.main import run_agent
from burrow.errors import BurrowError


def main():
    """Run the burrow agent."""
    try:
        asyncio.run(run_agent())
    except KeyboardInterrupt:
        print("\nAgent shutdown requested")
        sys.exit(0)
    except BurrowError as e:
        print(f"Agent error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
