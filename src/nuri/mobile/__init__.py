"""
Nuri Mobile Module

Client-side key custody flows: the passkey PRF secret service, the identity
provider integration, and the export / recovery pipelines built on them.
"""

__all__ = []
