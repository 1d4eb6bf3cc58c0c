import os

from dotenv import load_dotenv

from polymarket_veto.cli.commands import app

# Load .env file from ~/.polymarket-veto/ if it exists
# Precedence: existing env vars > .env file (override=False)
load_dotenv(os.path.expanduser("~/.polymarket-veto/.env"), override=False)

if __name__ == "__main__":
    app()
