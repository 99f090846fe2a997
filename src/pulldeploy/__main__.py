"""Entry point for ``python -m pulldeploy``."""

from pulldeploy.cli import run

if __name__ == "__main__":
    run()
