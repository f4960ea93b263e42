"""
Nuri Bitcoin Wallet Module

Recipient validation, UTXO and fee lookups, coin selection, PSBT
construction and the send state machine.
"""

__all__ = []
