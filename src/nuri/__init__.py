"""
Nuri - Embedded Wallet Client Core

Passkey-protected key export and recovery for identity-provider embedded
wallets, plus outbound Bitcoin Taproot payments.

Main Components:
- core: Codecs, configuration, logging and the error taxonomy
- mobile: Passkey secret derivation, key export and key recovery
- wallet: Address handling, chain data client, coin selection and PSBT sends
"""

__version__ = "0.1.0"
__author__ = "Nuri Development Team"

__all__ = []
