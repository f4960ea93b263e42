"""
Shared fixtures for nuri tests.

Platform collaborators (passkey authenticator, secure store, identity SDK
session) are in-memory fakes; HTTP collaborators run as in-process aiohttp
servers so the real clients are exercised end to end.
"""

import secrets
from typing import Any, Dict, List, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from nuri.core.codec import btoa_arr
from nuri.core.crypto_utils import public_key_compressed, public_key_uncompressed
from nuri.mobile.identity import (
    CHAIN_BITCOIN_TAPROOT,
    CHAIN_ETHEREUM,
    EmbeddedWallet,
    IdentitySession,
    IdentityUser,
    SealedExport,
)
from nuri.mobile.passkey import MockPasskeyAuthenticator, PasskeySecretService
from nuri.mobile.secure_store import InMemorySecureStore
from nuri.mobile.unsealing import Unsealer, split_sealed_blob
from nuri.wallet.chain_client import TxOut, Utxo
from nuri.wallet.transaction_builder import TransactionSigner

# secp256k1 private key 1; its public key is the generator point G
KEY_ONE = bytes(31) + b"\x01"
G_COMPRESSED = "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
G_UNCOMPRESSED = (
    "0479be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
    "483ada7726a3c4655da4fbfc0e1108a8fd17b448a68554199c47d08ffb10d4b8"
)

SEGWIT_ADDRESS = "bc1qar0srrr7xfkvy5l643lydnw9re59gtzzwf5mdq"
P2PKH_ADDRESS = "1BoatSLRHtKNngkdXEeobR76b53LETtpyT"
P2SH_ADDRESS = "3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy"


def _xor(left: bytes, right: bytes) -> bytes:
    return bytes(a ^ b for a, b in zip(left, right))


class FakeIdentitySession(IdentitySession):
    """Identity SDK session with a fixed user and token."""

    def __init__(self, user: Optional[IdentityUser], access_token: Optional[str] = "access-token"):
        self.user = user
        self.access_token = access_token
        self.created: List[str] = []

    async def get_user(self) -> Optional[IdentityUser]:
        return self.user

    async def get_access_token(self) -> Optional[str]:
        return self.access_token

    async def create_wallet(self, chain_type: str) -> Optional[EmbeddedWallet]:
        self.created.append(chain_type)
        wallet = EmbeddedWallet(
            id=f"wallet-{chain_type}",
            address=SEGWIT_ADDRESS,
            public_key=G_COMPRESSED,
            chain_type=chain_type,
        )
        self.user.linked_accounts.append(wallet)
        return wallet


class XorSealer:
    """
    Stand-in for the provider's sealed export.

    ``ciphertext = key XOR pad`` and ``encapsulated_key = pad``; XorUnsealer
    reverses it.
    """

    def __init__(self, private_key: bytes):
        self.private_key = private_key
        self.calls: List[Dict[str, Any]] = []

    async def export_wallet(self, wallet_id: str, access_token: str, recipient_public_key: str) -> SealedExport:
        self.calls.append(
            {"wallet_id": wallet_id, "access_token": access_token, "recipient_public_key": recipient_public_key}
        )
        pad = secrets.token_bytes(len(self.private_key))
        return SealedExport(ciphertext=_xor(self.private_key, pad), encapsulated_key=pad)


class XorUnsealer(Unsealer):
    async def unseal(self, sealed_blob: bytes) -> bytes:
        ciphertext, pad = split_sealed_blob(sealed_blob, encapsulated_key_len=32)
        return _xor(ciphertext, pad)


class FakeSigner(TransactionSigner):
    def __init__(self, signed_hex: str = "02000000deadbeef", error: Optional[Exception] = None):
        self.signed_hex = signed_hex
        self.error = error
        self.psbts: List[str] = []

    async def sign_psbt(self, psbt_hex: str) -> str:
        self.psbts.append(psbt_hex)
        if self.error is not None:
            raise self.error
        return self.signed_hex


class FakeChainClient:
    """In-memory chain data provider keyed by txid."""

    def __init__(self, values: List[int], fee_rate: float = 2):
        self.fee_rate = fee_rate
        self.utxos = [Utxo(txid=f"{index + 1:064x}", vout=0, value=value) for index, value in enumerate(values)]
        self.prevout_lookups: List[str] = []
        self.broadcasts: List[str] = []
        self.broadcast_error: Optional[Exception] = None

    async def get_recommended_fee_rate(self, priority=None) -> float:
        return self.fee_rate

    async def get_utxos(self, address: str) -> List[Utxo]:
        return list(self.utxos)

    async def get_prevout(self, txid: str, vout: int) -> TxOut:
        self.prevout_lookups.append(txid)
        utxo = next(u for u in self.utxos if u.txid == txid and u.vout == vout)
        return TxOut(value=utxo.value, script_pubkey=bytes.fromhex("5120" + "11" * 32))

    async def broadcast(self, tx_hex: str) -> str:
        self.broadcasts.append(tx_hex)
        if self.broadcast_error is not None:
            raise self.broadcast_error
        return "ab" * 32


@pytest.fixture
def private_key():
    return secrets.token_bytes(31) + b"\x07"


@pytest.fixture
def eth_wallet(private_key):
    return EmbeddedWallet(
        id="wallet-eth",
        address="0x3f5CE5FBFe3E9af3971dD833D26bA9b5C936f0bE",
        public_key=public_key_uncompressed(private_key).hex(),
        chain_type=CHAIN_ETHEREUM,
    )


@pytest.fixture
def btc_wallet(private_key):
    return EmbeddedWallet(
        id="wallet-btc",
        address=SEGWIT_ADDRESS,
        public_key=public_key_compressed(private_key).hex(),
        chain_type=CHAIN_BITCOIN_TAPROOT,
        derivation_path="m/86'/0'/0'/0/0",
    )


@pytest.fixture
def identity_session(eth_wallet):
    return FakeIdentitySession(IdentityUser(id="did:privy:user-1", linked_accounts=[eth_wallet]))


@pytest.fixture
def authenticator():
    return MockPasskeyAuthenticator()


@pytest.fixture
def secure_store():
    return InMemorySecureStore()


@pytest.fixture
def passkeys(authenticator, secure_store):
    return PasskeySecretService(authenticator, secure_store)


@pytest.fixture
def sealer(private_key):
    return XorSealer(private_key)


@pytest.fixture
def unsealer():
    return XorUnsealer()


@pytest.fixture
def collected_errors():
    return []


class PrivyStub:
    """Programmable identity-provider REST endpoints."""

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []
        self.status = 200
        self.export_response: Any = {
            "ciphertext": btoa_arr(b"sealed-ciphertext"),
            "encapsulated_key": btoa_arr(b"\x04" + b"\x01" * 64),
        }
        self.rpc_response: Any = {
            "method": "signTransaction",
            "data": {"signed_transaction": "02000000signed", "encoding": "hex"},
        }

    async def _record(self, request: web.Request, kind: str) -> None:
        self.requests.append(
            {
                "kind": kind,
                "wallet_id": request.match_info["wallet_id"],
                "headers": dict(request.headers),
                "body": await request.json(),
            }
        )

    def _respond(self, payload: Any) -> web.Response:
        if self.status != 200:
            return web.Response(status=self.status, text="provider said no")
        if isinstance(payload, str):
            return web.Response(text=payload)
        return web.json_response(payload)

    async def export(self, request: web.Request) -> web.Response:
        await self._record(request, "export")
        return self._respond(self.export_response)

    async def rpc(self, request: web.Request) -> web.Response:
        await self._record(request, "rpc")
        return self._respond(self.rpc_response)

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/api/v1/wallets/{wallet_id}/export", self.export)
        app.router.add_post("/api/v1/wallets/{wallet_id}/rpc", self.rpc)
        return app


class MempoolStub:
    """Programmable mempool.space-style endpoints."""

    def __init__(self):
        self.utxos: List[Dict[str, Any]] = []
        self.txs: Dict[str, Dict[str, Any]] = {}
        self.fees: Any = {"fastestFee": 12, "halfHourFee": 8, "hourFee": 5, "economyFee": 2, "minimumFee": 1}
        self.broadcast_status = 200
        self.broadcast_text = "cd" * 32
        self.broadcasts: List[str] = []
        self.utxo_status = 200

    def add_utxo(self, txid: str, value: int, script_hex: str, vout: int = 0) -> None:
        self.utxos.append({"txid": txid, "vout": vout, "value": value, "status": {"confirmed": True}})
        outputs = [{"scriptpubkey": "6a", "value": 0} for _ in range(vout)]
        outputs.append({"scriptpubkey": script_hex, "value": value})
        self.txs[txid] = {"txid": txid, "vout": outputs}

    async def get_utxos(self, request: web.Request) -> web.Response:
        if self.utxo_status != 200:
            return web.Response(status=self.utxo_status, text="Invalid Bitcoin address")
        return web.json_response(self.utxos)

    async def get_tx(self, request: web.Request) -> web.Response:
        tx = self.txs.get(request.match_info["txid"])
        if tx is None:
            return web.Response(status=404, text="Transaction not found")
        return web.json_response(tx)

    async def get_fees(self, request: web.Request) -> web.Response:
        if isinstance(self.fees, str):
            return web.Response(text=self.fees)
        return web.json_response(self.fees)

    async def post_tx(self, request: web.Request) -> web.Response:
        self.broadcasts.append(await request.text())
        return web.Response(status=self.broadcast_status, text=self.broadcast_text)

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/address/{address}/utxo", self.get_utxos)
        app.router.add_get("/tx/{txid}", self.get_tx)
        app.router.add_get("/v1/fees/recommended", self.get_fees)
        app.router.add_post("/tx", self.post_tx)
        return app


async def _serve(app: web.Application) -> TestServer:
    server = TestServer(app)
    await server.start_server()
    return server


@pytest.fixture
async def privy_stub():
    stub = PrivyStub()
    server = await _serve(stub.app())
    stub.base_url = str(server.make_url("")).rstrip("/")
    yield stub
    await server.close()


@pytest.fixture
async def mempool_stub():
    stub = MempoolStub()
    server = await _serve(stub.app())
    stub.base_url = str(server.make_url("")).rstrip("/")
    yield stub
    await server.close()


@pytest.fixture
def make_chain():
    """Factory for an in-memory chain client funded with the given UTXO values."""
    return FakeChainClient


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def make_signer():
    return FakeSigner


@pytest.fixture
def make_session():
    return FakeIdentitySession
