"""
Outbound Bitcoin payments from the embedded Taproot wallet.

Each send attempt walks a single state machine:

    IDLE -> BUILDING -> SIGNING -> SIGNED -> BROADCASTING -> BROADCAST
                  \\________\\__________\\___________\\____-> FAILED

Fees are a flat estimate (recommended sat/vB times an assumed transaction
size). Input surplus beyond amount + fee is forfeited to the miner unless the
builder is configured to return it as change.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from nuri.core import config
from nuri.core.config import FeePriority, NetworkType
from nuri.core.exceptions import (
    DustLimitError,
    TransactionError,
    TransactionStateError,
    WalletError,
    WalletUnavailableError,
)
from nuri.core.logging_config import ErrorCallback, report_error
from nuri.wallet.address import address_to_script_pubkey, validate_address, xonly_public_key
from nuri.wallet.chain_client import MempoolClient, Utxo
from nuri.wallet.coin_selection import CoinSelector, GreedyAscendingSelector, estimate_fee
from nuri.wallet.psbt import Psbt, PsbtInput, PsbtOutput, TaprootDerivation, synthesize_derivation

if TYPE_CHECKING:
    from nuri.mobile.identity import EmbeddedWallet

module_logger = logging.getLogger(__name__)


class SendState(Enum):
    IDLE = "idle"
    BUILDING = "building"
    SIGNING = "signing"
    SIGNED = "signed"
    BROADCASTING = "broadcasting"
    BROADCAST = "broadcast"
    FAILED = "failed"


class ChangePolicy(Enum):
    """What happens to input value left over after amount + fee."""
    FORFEIT_TO_FEE = "forfeit"
    RETURN_TO_SENDER = "return"


class TransactionSigner(ABC):
    """Remote signer holding the wallet key."""

    @abstractmethod
    async def sign_psbt(self, psbt_hex: str) -> str:
        """Sign the PSBT and return the fully signed raw transaction hex."""
        pass


@dataclass
class SendAttempt:
    """Everything known about one payment, from request to txid."""
    recipient: str
    amount_sats: int
    state: SendState = SendState.IDLE
    fee_rate: Optional[float] = None
    fee_sats: Optional[int] = None
    selected_utxos: List[Utxo] = field(default_factory=list)
    change_sats: int = 0
    change_returned: bool = False
    psbt: Optional[Psbt] = None
    signed_tx_hex: Optional[str] = None
    txid: Optional[str] = None
    error: Optional[WalletError] = None

    @property
    def built(self) -> bool:
        return self.psbt is not None

    @property
    def psbt_hex(self) -> Optional[str]:
        return self.psbt.to_hex() if self.psbt is not None else None


class BitcoinTransactionBuilder:
    """
    Builds, signs and broadcasts payments for one Taproot wallet.

    Usage:
        builder = BitcoinTransactionBuilder(MempoolClient(), signer, wallet)
        attempt = await builder.send("bc1q...", 10_000)
        print(attempt.txid)
    """

    def __init__(
        self,
        chain: MempoolClient,
        signer: TransactionSigner,
        wallet: "EmbeddedWallet",
        network: NetworkType = config.NETWORK,
        selector: Optional[CoinSelector] = None,
        change_policy: ChangePolicy = ChangePolicy(config.CHANGE_POLICY),
        fee_priority: FeePriority = config.FEE_PRIORITY,
        estimated_vbytes: int = config.ESTIMATED_TX_VBYTES,
        dust_limit: int = config.DUST_LIMIT_SATS,
        logger: Optional[logging.Logger] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.chain = chain
        self.signer = signer
        self.wallet = wallet
        self.network = network
        self.selector = selector or GreedyAscendingSelector()
        self.change_policy = change_policy
        self.fee_priority = fee_priority
        self.estimated_vbytes = estimated_vbytes
        self.dust_limit = dust_limit
        self.logger = logger or module_logger
        self.on_error = on_error

    async def send(self, recipient: str, amount_sats: int) -> SendAttempt:
        """Build, sign and broadcast in one go."""
        attempt = await self.build(recipient, amount_sats)
        await self.sign(attempt)
        await self.broadcast(attempt)
        return attempt

    async def build(self, recipient: str, amount_sats: int) -> SendAttempt:
        """
        Construct the unsigned PSBT for paying ``amount_sats`` to ``recipient``.

        Raises:
            TransactionError, DustLimitError, InvalidAddressError,
            InsufficientFundsError, NetworkError, MalformedProviderResponseError
        """
        attempt = SendAttempt(recipient=recipient, amount_sats=amount_sats)
        attempt.state = SendState.BUILDING
        try:
            await self._build(attempt)
        except Exception as exc:
            raise self._fail(attempt, exc, "send.build_failed")

        self.logger.info(
            "Transaction built",
            extra={
                "event": "send.built",
                "amount_sats": attempt.amount_sats,
                "fee_sats": attempt.fee_sats,
                "inputs": len(attempt.selected_utxos),
                "change_sats": attempt.change_sats,
                "change_returned": attempt.change_returned,
            },
        )
        return attempt

    async def _build(self, attempt: SendAttempt) -> None:
        amount = attempt.amount_sats
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise TransactionError("Amount must be a positive whole number of satoshis.", details={"amount": amount})
        if amount < self.dust_limit:
            raise DustLimitError(
                f"Amount is below the dust limit of {self.dust_limit} sats.",
                details={"amount": amount, "dust_limit": self.dust_limit},
            )

        attempt.recipient = validate_address(attempt.recipient, self.network)
        recipient_script = address_to_script_pubkey(attempt.recipient, self.network)

        if not self.wallet.address or not self.wallet.public_key:
            raise WalletUnavailableError("Bitcoin wallet address or public key not available.")
        internal_key = xonly_public_key(self.wallet.public_key)
        derivation = self._derivation()

        attempt.fee_rate = await self.chain.get_recommended_fee_rate(self.fee_priority)
        attempt.fee_sats = estimate_fee(attempt.fee_rate, self.estimated_vbytes)

        utxos = await self.chain.get_utxos(self.wallet.address)
        attempt.selected_utxos = self.selector.select(utxos, amount + attempt.fee_sats)

        inputs = []
        for utxo in attempt.selected_utxos:
            prevout = await self.chain.get_prevout(utxo.txid, utxo.vout)
            inputs.append(
                PsbtInput(
                    txid=utxo.txid,
                    vout=utxo.vout,
                    value=prevout.value,
                    script_pubkey=prevout.script_pubkey,
                    internal_key=internal_key,
                    derivation=derivation,
                )
            )

        outputs = [PsbtOutput(value=amount, script_pubkey=recipient_script)]
        attempt.change_sats = sum(tx_input.value for tx_input in inputs) - amount - attempt.fee_sats
        if self.change_policy == ChangePolicy.RETURN_TO_SENDER and attempt.change_sats >= self.dust_limit:
            outputs.append(
                PsbtOutput(
                    value=attempt.change_sats,
                    script_pubkey=address_to_script_pubkey(self.wallet.address, self.network),
                )
            )
            attempt.change_returned = True
        elif attempt.change_sats > 0:
            self.logger.info(
                "Input surplus forfeited to fee",
                extra={"event": "send.change_forfeited", "change_sats": attempt.change_sats},
            )

        attempt.psbt = Psbt(inputs=inputs, outputs=outputs)

    def _derivation(self) -> TaprootDerivation:
        path = getattr(self.wallet, "derivation_path", None)
        if path:
            try:
                return TaprootDerivation.parse(path)
            except ValueError:
                self.logger.warning(
                    "Unparseable wallet derivation path, using BIP-86 default",
                    extra={"event": "send.derivation_fallback", "path": path},
                )
        return synthesize_derivation(self.network)

    async def sign(self, attempt: SendAttempt) -> SendAttempt:
        """Have the remote signer sign the built PSBT."""
        if attempt.state != SendState.BUILDING or attempt.psbt is None:
            raise TransactionStateError(
                "Transaction must be built before signing.",
                details={"state": attempt.state.value},
            )
        attempt.state = SendState.SIGNING
        try:
            attempt.signed_tx_hex = await self.signer.sign_psbt(attempt.psbt.to_hex())
        except Exception as exc:
            raise self._fail(attempt, exc, "send.sign_failed")
        attempt.state = SendState.SIGNED
        self.logger.info("Transaction signed", extra={"event": "send.signed"})
        return attempt

    async def broadcast(self, attempt: SendAttempt) -> SendAttempt:
        """Submit the signed transaction; the txid lands on ``attempt.txid``."""
        if attempt.state != SendState.SIGNED or not attempt.signed_tx_hex:
            raise TransactionStateError(
                "Transaction must be signed before broadcasting.",
                details={"state": attempt.state.value},
            )
        attempt.state = SendState.BROADCASTING
        try:
            attempt.txid = await self.chain.broadcast(attempt.signed_tx_hex)
        except Exception as exc:
            raise self._fail(attempt, exc, "send.broadcast_failed")
        attempt.state = SendState.BROADCAST
        return attempt

    def _fail(self, attempt: SendAttempt, exc: Exception, event: str) -> WalletError:
        """Mark ``attempt`` failed and return the typed error to raise."""
        if isinstance(exc, WalletError):
            error = exc
        else:
            error = WalletError(f"Send failed: {exc}", details={"cause": type(exc).__name__})
            error.__cause__ = exc
        attempt.state = SendState.FAILED
        attempt.error = error
        report_error(self.logger, error, self.on_error, event)
        return error
