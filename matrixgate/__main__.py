"""
Entry point for running matrixgate as a module: python -m matrixgate
"""

from matrixgate.cli.commands import app

if __name__ == "__main__":
    app()
