"""
Tests for the Jito bundle relay.

Tests:
    1. Tip tables and the tip floor rule
    2. Parallel submission picks the first success in endpoint order
    3. Sequential mode rotates endpoints on rate-limit codes
    4. send_transaction retries, polls landing status and falls back to the signature
"""
import asyncio

import pytest
from unittest.mock import AsyncMock
from solders.hash import Hash
from solders.transaction import Transaction

from conftest import FakeResponse, FakeSession
from swapengine.core.backoff import BackoffPolicy
from swapengine.execution.jito import (
    DEFAULT_TIP_FLOOR, JITO_TIP_ACCOUNTS, BundleResult, BundleStatus, JitoBundleClient,
    calculate_recommended_tip, calculate_turbo_tip, competitive_tip,
)
from swapengine.models import SignedTransaction

ENDPOINTS = ["https://a.jito", "https://b.jito", "https://c.jito"]


class SteppingClock:
    """Clock advanced by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def make_client(clock=None, parallel=True, attempts=2):
    clock = clock or SteppingClock()
    rpc = AsyncMock()
    rpc.get_latest_blockhash.return_value = (Hash.default(), 1234)
    rpc.is_confirmed.return_value = False
    return JitoBundleClient(
        rpc,
        endpoints=ENDPOINTS,
        backoff=BackoffPolicy(max_attempts=attempts, base_delay=0.3, sleep=clock.sleep),
        landing_timeout=8.0,
        poll_interval=1.0,
        parallel=parallel,
        sleep=clock.sleep,
        clock=clock,
    )


def scripted_endpoints(client, outcomes):
    """Patch per-endpoint submission with (latency, BundleResult) per endpoint."""
    calls = []

    async def send(endpoint, encoded):
        calls.append(endpoint)
        latency, result = outcomes[endpoint]
        await asyncio.sleep(latency)
        return result

    client._send_bundle_to_endpoint = send
    return calls


class TestTipTables:
    @pytest.mark.parametrize("value,tip", [
        (0.05, 3_000_000),
        (0.1, 5_000_000),
        (0.7, 7_500_000),
        (2.0, 10_000_000),
        (5.0, 15_000_000),
    ])
    def test_recommended_tip(self, value, tip):
        assert calculate_recommended_tip(value) == tip

    @pytest.mark.parametrize("value,tip", [
        (0.1, 10_000_000),
        (0.5, 20_000_000),
        (3.0, 30_000_000),
        (50.0, 50_000_000),
    ])
    def test_turbo_tip(self, value, tip):
        assert calculate_turbo_tip(value) == tip

    def test_tip_floor_only_raises(self):
        assert competitive_tip(5_000_000, 10_000) == 5_000_000
        assert competitive_tip(1_000, 10_000) == 10_000


class TestTipFloor:
    async def test_median_landed_tip_in_lamports(self):
        client = make_client()
        client._session = FakeSession([FakeResponse(payload=[{'landed_tips_50th_percentile': 0.0000152587890625}])])
        assert await client.get_tip_floor() == 15_259

    async def test_unavailable_uses_default(self):
        client = make_client()
        client._session = FakeSession([FakeResponse(status=503)])
        assert await client.get_tip_floor() == DEFAULT_TIP_FLOOR

    async def test_empty_payload_uses_default(self):
        client = make_client()
        client._session = FakeSession([FakeResponse(payload=[])])
        assert await client.get_tip_floor() == DEFAULT_TIP_FLOOR


class TestTipTransaction:
    async def test_transfer_to_known_tip_account(self, signer):
        client = make_client()
        raw = await client.create_tip_transaction(signer, 7_500_000)
        tx = Transaction.from_bytes(raw)
        keys = [str(k) for k in tx.message.account_keys]
        assert keys[0] == signer.public_key
        assert any(k in JITO_TIP_ACCOUNTS for k in keys)
        client.rpc.get_latest_blockhash.assert_awaited_once()


class TestSendBundleParallel:
    async def test_first_success_in_endpoint_order_wins(self):
        client = make_client()
        calls = scripted_endpoints(client, {
            "https://a.jito": (0.001, BundleResult(success=False, error="rate limited", endpoint="https://a.jito")),
            "https://b.jito": (0.03, BundleResult(success=True, bundle_id="bundle-b", endpoint="https://b.jito")),
            "https://c.jito": (0.0, BundleResult(success=True, bundle_id="bundle-c", endpoint="https://c.jito")),
        })
        result = await client.send_bundle([b"swap", b"tip"])
        assert result.success
        assert result.bundle_id == "bundle-b"
        assert sorted(calls) == ENDPOINTS

    async def test_only_second_endpoint_succeeds(self):
        client = make_client()
        scripted_endpoints(client, {
            "https://a.jito": (0.02, BundleResult(success=False, error="Timeout")),
            "https://b.jito": (0.01, BundleResult(success=True, bundle_id="bundle-b")),
            "https://c.jito": (0.005, BundleResult(success=False, error="bad request")),
        })
        result = await client.send_bundle_parallel([b"swap"])
        assert result.success
        assert result.bundle_id == "bundle-b"

    async def test_all_fail_reports_every_endpoint(self):
        client = make_client()
        scripted_endpoints(client, {
            e: (0.0, BundleResult(success=False, error=f"down {i}")) for i, e in enumerate(ENDPOINTS)
        })
        result = await client.send_bundle_parallel([b"swap"])
        assert not result.success
        assert result.error.startswith("All Jito endpoints failed:")
        for i in range(len(ENDPOINTS)):
            assert f"down {i}" in result.error

    async def test_unexpected_exception_is_collected(self):
        client = make_client()

        async def send(endpoint, encoded):
            if endpoint == "https://a.jito":
                raise RuntimeError("socket closed")
            return BundleResult(success=endpoint == "https://c.jito", bundle_id="bundle-c", error="nope")

        client._send_bundle_to_endpoint = send
        result = await client.send_bundle_parallel([b"swap"])
        assert result.bundle_id == "bundle-c"


class TestSendBundle:
    async def test_empty_bundle_rejected(self):
        assert (await make_client().send_bundle([])).error == "Empty bundle"

    async def test_bundle_size_limit(self):
        result = await make_client().send_bundle([b"tx"] * 6)
        assert not result.success
        assert "Maximum 5" in result.error

    async def test_sequential_rotates_on_rate_limit(self):
        client = make_client(parallel=False)
        client._send_bundle_to_endpoint = AsyncMock(
            return_value=BundleResult(success=False, error="rate limited", error_code=-32097),
        )
        await client.send_bundle([b"tx"])
        assert client.current_endpoint == "https://b.jito"

    async def test_sequential_keeps_endpoint_on_other_errors(self):
        client = make_client(parallel=False)
        client._send_bundle_to_endpoint = AsyncMock(
            return_value=BundleResult(success=False, error="bundle invalid", error_code=-32000),
        )
        await client.send_bundle([b"tx"])
        assert client.current_endpoint == "https://a.jito"

    def test_preferred_endpoint_goes_first(self):
        client = JitoBundleClient(AsyncMock(), endpoints=ENDPOINTS, preferred_endpoint="https://c.jito")
        assert client.current_endpoint == "https://c.jito"
        assert len(client.endpoints) == 3


class TestSendTransaction:
    SIGNED = SignedTransaction(raw=b"swap-bytes", signature="5" * 64)

    async def test_lands_via_bundle_status(self, signer):
        clock = SteppingClock()
        client = make_client(clock)
        client.send_bundle = AsyncMock(return_value=BundleResult(success=True, bundle_id="b" * 32))
        client.get_bundle_status = AsyncMock(side_effect=[
            BundleStatus(landed=False, status="pending"),
            BundleStatus(landed=True, status="confirmed"),
        ])
        result = await client.send_transaction(self.SIGNED, signer, tip_lamports=5_000_000)
        assert result.success and result.landed
        assert result.signature == self.SIGNED.signature
        bundle = client.send_bundle.await_args.args[0]
        assert bundle[0] == self.SIGNED.raw
        assert len(bundle) == 2

    async def test_rejection_is_retried_then_reported(self, signer):
        clock = SteppingClock()
        client = make_client(clock, attempts=2)
        client.send_bundle = AsyncMock(return_value=BundleResult(success=False, error="All Jito endpoints failed: x"))
        result = await client.send_transaction(self.SIGNED, signer)
        assert not result.success
        assert result.bundle_id is None
        assert client.send_bundle.await_count == 2
        assert clock.sleeps == [0.3]
        # A fresh tip transaction per attempt
        assert client.rpc.get_latest_blockhash.await_count == 2

    async def test_failed_status_stops_polling(self, signer):
        client = make_client()
        client.send_bundle = AsyncMock(return_value=BundleResult(success=True, bundle_id="bundle"))
        client.get_bundle_status = AsyncMock(return_value=BundleStatus(landed=False, status="failed"))
        result = await client.send_transaction(self.SIGNED, signer)
        assert not result.success
        assert result.bundle_id == "bundle"
        assert client.get_bundle_status.await_count == 1

    async def test_timeout_falls_back_to_signature_status(self, signer):
        clock = SteppingClock()
        client = make_client(clock)
        client.send_bundle = AsyncMock(return_value=BundleResult(success=True, bundle_id="bundle"))
        client.get_bundle_status = AsyncMock(return_value=BundleStatus(landed=False, status="not_found"))
        client.rpc.is_confirmed.return_value = True
        result = await client.send_transaction(self.SIGNED, signer)
        assert result.success and result.landed
        assert client.get_bundle_status.await_count == 8
        client.rpc.is_confirmed.assert_awaited_once_with(self.SIGNED.signature)

    async def test_timeout_without_confirmation(self, signer):
        client = make_client()
        client.send_bundle = AsyncMock(return_value=BundleResult(success=True, bundle_id="bundle"))
        client.get_bundle_status = AsyncMock(return_value=BundleStatus(landed=False, status="pending"))
        result = await client.send_transaction(self.SIGNED, signer)
        assert not result.success
        assert result.error == "Bundle confirmation timeout"

    async def test_no_wait_returns_after_acceptance(self, signer):
        client = make_client()
        client.send_bundle = AsyncMock(return_value=BundleResult(success=True, bundle_id="bundle"))
        client.get_bundle_status = AsyncMock()
        result = await client.send_transaction(self.SIGNED, signer, wait_for_confirmation=False)
        assert result.success and not result.landed
        client.get_bundle_status.assert_not_awaited()

    async def test_status_polled_on_accepting_endpoint(self, signer):
        client = make_client()
        client.send_bundle = AsyncMock(return_value=BundleResult(
            success=True, bundle_id="bundle", endpoint="https://c.jito",
        ))
        client.get_bundle_status = AsyncMock(return_value=BundleStatus(landed=True, status="confirmed"))
        result = await client.send_transaction(self.SIGNED, signer)
        assert result.landed
        assert client.current_endpoint == "https://a.jito"
        client.get_bundle_status.assert_awaited_once_with("bundle", endpoint="https://c.jito")


class TestBundleStatus:
    async def test_confirmed_status_is_landed(self):
        client = make_client()
        client._json_rpc = AsyncMock(return_value={
            'result': {'value': [{'bundle_id': 'x', 'confirmation_status': 'finalized'}]},
        })
        status = await client.get_bundle_status("x")
        assert status.landed
        assert status.status == "finalized"

    async def test_missing_bundle(self):
        client = make_client()
        client._json_rpc = AsyncMock(return_value={'result': {'value': []}})
        status = await client.get_bundle_status("x")
        assert not status.landed
        assert status.status == "not_found"

    async def test_explicit_endpoint(self):
        client = make_client()
        client._json_rpc = AsyncMock(return_value={
            'result': {'value': [{'bundle_id': 'x', 'confirmation_status': 'confirmed'}]},
        })
        status = await client.get_bundle_status("x", endpoint="https://b.jito")
        assert status.landed
        assert client._json_rpc.await_args.args[0] == "https://b.jito/api/v1/bundles"
        assert client._json_rpc.await_args.args[1] == "getBundleStatuses"
