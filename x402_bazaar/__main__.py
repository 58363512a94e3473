# x402_bazaar/__main__.py
from x402_bazaar.main import cli

cli()
