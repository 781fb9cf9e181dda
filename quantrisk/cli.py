"""
CLI Entry point for the Quant Risk Engine
"""

import asyncio
import sys


def cli_entry():
    """Entry point function for console script."""
    # On Windows, use a different event loop policy to avoid issues
    if sys.platform == 'win32':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

    asyncio.run(main())


from .utils.cli import main

if __name__ == "__main__":
    cli_entry()
