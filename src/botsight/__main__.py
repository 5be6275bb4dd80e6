"""
BotSight CLI Entry Point

Allows running the package as a module: python -m botsight
"""

from botsight.cli import main

if __name__ == "__main__":
    main()
