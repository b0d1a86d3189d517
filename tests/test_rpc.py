import pytest

from drift_trader.rpc import RpcRateLimitError, SolanaRpcClient, SolanaRpcError

ADDRESS = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


class FakeResponse:
    def __init__(self, status=200, body=None, headers=None, text=""):
        self.status = status
        self._body = body
        self.headers = headers or {}
        self._text = text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        return self._body

    async def text(self):
        return self._text


class FakeSession:
    """Returns queued responses in order and records the JSON payloads."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.payloads = []

    def post(self, url, json=None, timeout=None):
        self.payloads.append(json)
        return self.responses.pop(0)

    async def close(self):
        pass


def rpc_with(*responses, **kwargs):
    rpc = SolanaRpcClient("http://rpc.test", **kwargs)
    rpc.session = FakeSession(*responses)
    return rpc


def test_jittered_backoff_increases_with_attempt():
    backoff_0 = SolanaRpcClient._jittered_backoff(0, base=1.0, max_backoff=60.0)
    backoff_2 = SolanaRpcClient._jittered_backoff(2, base=1.0, max_backoff=60.0)
    assert backoff_2 > backoff_0


def test_jittered_backoff_respects_max():
    backoff = SolanaRpcClient._jittered_backoff(10, base=1.0, max_backoff=5.0)
    assert backoff <= 5.0 + 5.0 * 0.25


def test_get_retry_after_extracts_header():
    assert SolanaRpcClient._get_retry_after({"Retry-After": "2"}) == 2.0
    assert SolanaRpcClient._get_retry_after({}) is None
    assert SolanaRpcClient._get_retry_after({"Retry-After": "soon"}) is None


@pytest.mark.asyncio
async def test_context_manager_initializes_session():
    rpc = SolanaRpcClient("http://rpc.test")
    assert rpc.session is None
    async with rpc:
        session = rpc.session
        assert session is not None
    assert session.closed
    assert rpc.session is None


@pytest.mark.asyncio
async def test_client_can_be_reopened_after_close():
    rpc = SolanaRpcClient("http://rpc.test")
    await rpc.open()
    first = rpc.session
    await rpc.close()

    await rpc.open()
    try:
        assert rpc.session is not first
        assert not rpc.session.closed
    finally:
        await rpc.close()


@pytest.mark.asyncio
async def test_request_without_session_raises():
    rpc = SolanaRpcClient("http://rpc.test")
    with pytest.raises(SolanaRpcError, match="Session not initialized"):
        await rpc.get_balance(ADDRESS)


@pytest.mark.asyncio
async def test_get_balance_parses_lamports():
    rpc = rpc_with(FakeResponse(body={"jsonrpc": "2.0", "id": 1, "result": {"context": {"slot": 1}, "value": 1_500_000_000}}))

    lamports = await rpc.get_balance(ADDRESS)

    assert lamports == 1_500_000_000
    payload = rpc.session.payloads[0]
    assert payload["method"] == "getBalance"
    assert payload["params"] == [ADDRESS, {"commitment": "confirmed"}]


@pytest.mark.asyncio
async def test_get_balance_sol_converts_units():
    from decimal import Decimal

    rpc = rpc_with(FakeResponse(body={"result": {"value": 250_000_000}}))
    assert await rpc.get_balance_sol(ADDRESS) == Decimal("0.25")


@pytest.mark.asyncio
async def test_json_rpc_error_raises():
    rpc = rpc_with(FakeResponse(body={"error": {"code": -32602, "message": "Invalid param"}}))

    with pytest.raises(SolanaRpcError, match="Invalid param"):
        await rpc.get_balance(ADDRESS)


@pytest.mark.asyncio
async def test_http_error_raises():
    rpc = rpc_with(FakeResponse(status=503, text="unavailable"))

    with pytest.raises(SolanaRpcError, match="503"):
        await rpc.get_balance(ADDRESS)


@pytest.mark.asyncio
async def test_rate_limit_retries_with_retry_after():
    rpc = rpc_with(
        FakeResponse(status=429, headers={"Retry-After": "0"}),
        FakeResponse(body={"result": {"value": 42}}),
    )

    assert await rpc.get_balance(ADDRESS) == 42
    assert len(rpc.session.payloads) == 2


@pytest.mark.asyncio
async def test_rate_limit_exhausted():
    rpc = rpc_with(
        FakeResponse(status=429, headers={"Retry-After": "0"}),
        FakeResponse(status=429, headers={"Retry-After": "0"}),
        max_retries=1,
    )

    with pytest.raises(RpcRateLimitError):
        await rpc.get_balance(ADDRESS)
