import os

from dotenv import load_dotenv

from wamcp.cli.commands import app

# Load .env file from ~/.wamcp/ if it exists
# Precedence: existing env vars > .env file (override=False)
load_dotenv(os.path.expanduser("~/.wamcp/.env"), override=False)

if __name__ == "__main__":
    app()
