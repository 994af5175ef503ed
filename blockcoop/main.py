"""
BlockCoop SACCO client
Entry point for ``python -m blockcoop.main``; see ``blockcoop.cli`` for commands.
"""
from .cli import main

if __name__ == "__main__":
    main()
