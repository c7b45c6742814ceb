"""Allow `python -m gitfetch`."""

from .main import cli

cli()
