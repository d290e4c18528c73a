"""Allow running as: python -m rfq_engine"""

from rfq_engine.main import cli

if __name__ == "__main__":
    cli()
