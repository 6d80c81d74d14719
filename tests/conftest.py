"""
Shared fixtures and in-process fakes.

No test touches the network: venues, tiers, price feeds and balances are
replaced with small fakes that record their calls.
"""
import json
from typing import Dict, List, Optional

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from swapengine.core.config import SOL_MINT
from swapengine.execution.tiers import TierOutcome
from swapengine.models import (
    Quote, SwapMaterial, TokenBalance, TokenInfo, VenueKind, apply_slippage,
)
from swapengine.wallet import KeypairSigner

TOKEN_MINT = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"
PUMP_MINT = "HeLp6NuQkmYB4pYWo2zYs22mESHXPQYzXbB8n4V98jwC"


def unsigned_transaction(payer: Pubkey) -> bytes:
    """Serialized v0 transaction with a placeholder signature, as venues return it."""
    ix = transfer(TransferParams(from_pubkey=payer, to_pubkey=Pubkey.new_unique(), lamports=1))
    message = MessageV0.try_compile(payer, [ix], [], Hash.default())
    return bytes(VersionedTransaction.populate(message, [Signature.default()]))


def make_quote(
    venue: VenueKind = VenueKind.JUPITER,
    in_amount: int = 100_000_000,
    out_amount: int = 1_000_000,
    slippage_bps: int = 500,
    buy: bool = True,
    **kwargs,
) -> Quote:
    input_mint, output_mint = (SOL_MINT, TOKEN_MINT) if buy else (TOKEN_MINT, SOL_MINT)
    return Quote(
        venue=venue,
        input_mint=input_mint,
        output_mint=output_mint,
        in_amount=in_amount,
        out_amount=out_amount,
        min_out_amount=apply_slippage(out_amount, slippage_bps),
        slippage_bps=slippage_bps,
        **kwargs,
    )


def make_token_info(
    address: str = TOKEN_MINT,
    price_usd: float = 1.0,
    price_native: float = 0.005,
    is_pump_fun: bool = False,
    on_bonding_curve: bool = False,
    **kwargs,
) -> TokenInfo:
    return TokenInfo(
        address=address,
        symbol=kwargs.pop('symbol', 'TEST'),
        name=kwargs.pop('name', 'Test Token'),
        price_usd=price_usd,
        price_native=price_native,
        is_pump_fun=is_pump_fun,
        on_bonding_curve=on_bonding_curve,
        dex_id='pumpfun' if on_bonding_curve else 'raydium',
        **kwargs,
    )


class FakeResponse:
    """Minimal aiohttp response used as an async context manager."""

    def __init__(self, status=200, payload=None, body=b"", json_error=None):
        self.status = status
        self._payload = payload
        self._body = body
        self._json_error = json_error

    async def json(self, content_type=None):
        if self._json_error is not None:
            raise self._json_error
        return self._payload

    async def text(self):
        return self._body.decode() if self._body else json.dumps(self._payload)

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


def html_response(status=200):
    """A gateway error page served where JSON was expected."""
    body = "<html><body>502 Bad Gateway</body></html>"
    return FakeResponse(
        status=status,
        body=body.encode(),
        json_error=json.JSONDecodeError("Expecting value", body, 0),
    )


class FakeSession:
    """aiohttp session stand-in serving queued responses and recording requests."""

    closed = False

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def _next(self, method, url, kwargs):
        self.requests.append((method, url, kwargs))
        return self.responses.pop(0)

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)


class FakeVenue:
    """SwapVenue that quotes a fixed rate and builds a real unsigned transaction."""

    def __init__(self, kind: VenueKind = VenueKind.JUPITER, out_amount: int = 1_000_000, result=None):
        self.kind = kind
        self.out_amount = out_amount
        self.result = result
        self.quote_calls: List[tuple] = []
        self.build_calls: List[tuple] = []
        self.buys: List[tuple] = []
        self.sells: List[tuple] = []
        self.build_errors: List[Exception] = []

    async def quote(self, input_mint, output_mint, amount, slippage_bps, decimals=None):
        self.quote_calls.append((input_mint, output_mint, amount, slippage_bps, decimals))
        return Quote(
            venue=self.kind,
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=amount,
            out_amount=self.out_amount,
            min_out_amount=apply_slippage(self.out_amount, slippage_bps),
            slippage_bps=slippage_bps,
            token_decimals=decimals,
        )

    async def build(self, quote, signer_public_key, fee_hint):
        self.build_calls.append((quote, signer_public_key, fee_hint))
        if self.build_errors:
            raise self.build_errors.pop(0)
        payer = Pubkey.from_string(signer_public_key)
        return SwapMaterial(payload=unsigned_transaction(payer), venue=self.kind)

    async def execute(self, quote, signer, opts):
        return self.result

    async def buy(self, token, sol_amount, signer, opts):
        self.buys.append((token, sol_amount, opts))
        return self.result

    async def sell(self, token, amount, decimals, signer, opts):
        self.sells.append((token, amount, decimals, opts))
        return self.result


class FakeTier:
    """Submission tier scripted with a list of exceptions / None (success) per call."""

    def __init__(self, name: str, script: List[Optional[Exception]], private: bool = False, output_amount=None):
        self.name = name
        self.private = private
        self.script = list(script)
        self.output_amount = output_amount
        self.calls = 0

    async def submit(self, prepare, signer, tip_lamports=None):
        self.calls += 1
        prepared = await prepare()
        step = self.script.pop(0) if self.script else None
        if step is not None:
            raise step
        return TierOutcome(
            tier=self.name,
            signature=prepared.signed.signature,
            prepared=prepared,
            output_amount=self.output_amount,
        )


class FakeTokenInfo:
    """TokenInfoProvider over a fixed mapping."""

    def __init__(self, infos: Optional[Dict[str, TokenInfo]] = None, error: Optional[Exception] = None):
        self.infos = dict(infos or {})
        self.error = error
        self.batch_calls: List[tuple] = []

    async def get_token_info(self, address, force_refresh=False):
        if self.error:
            raise self.error
        return self.infos.get(address)

    async def get_token_infos(self, addresses, force_refresh=False):
        addresses = list(addresses)
        self.batch_calls.append((addresses, force_refresh))
        return {a: self.infos[a] for a in addresses if a in self.infos}


class FakeBalances:
    """BalanceReader returning scripted balances per mint, last value repeated."""

    def __init__(self, balances: Optional[Dict[str, List[Optional[float]]]] = None, decimals: int = 6):
        self.balances = {k: list(v) for k, v in (balances or {}).items()}
        self.decimals = decimals
        self.calls: List[tuple] = []

    async def get_token_balance(self, owner, mint):
        self.calls.append((owner, mint))
        script = self.balances.get(mint) or [None]
        amount = script.pop(0) if len(script) > 1 else script[0]
        if amount is None:
            return None
        return TokenBalance(
            mint=mint,
            amount=amount,
            raw_amount=int(amount * 10 ** self.decimals),
            decimals=self.decimals,
        )


@pytest.fixture
def signer():
    return KeypairSigner(Keypair())


@pytest.fixture
def no_sleep():
    calls = []

    async def sleep(seconds):
        calls.append(seconds)

    sleep.calls = calls
    return sleep
