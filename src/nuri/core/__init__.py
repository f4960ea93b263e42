"""
Nuri Core Module

Shared building blocks: byte/text codecs, secp256k1 and AES-GCM helpers,
environment configuration, structured logging and wallet exceptions.
"""

__all__ = []
