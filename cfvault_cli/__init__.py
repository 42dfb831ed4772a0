"""Cloud Foundry helper for the Vault service broker.

The command surface is implemented with Typer and Rich: it looks up the
service key bound to a Vault service instance and runs the ``vault`` CLI
with that key's credentials and backend paths.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
