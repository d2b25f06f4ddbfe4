"""Wallet core: JSON-RPC objects and client, address book and models, Stratum pool mining."""

__version__ = "0.1.0"