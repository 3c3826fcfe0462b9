"""Allow ``python -m skillchain``."""

from skillchain.cli.app import app

if __name__ == "__main__":
    app()
