"""forgesafe: propose Foundry script output to a Safe multisig."""

__version__ = "0.3.0"

__all__ = ["__version__"]
