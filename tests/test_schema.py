from fastapi.testclient import TestClient

from conftest import UNAPPROVED_WALLET
from ethtrade.schema import schema


async def execute(trading, query):
    return await schema.execute(query, context_value={"trading": trading})


async def test_balance_query(trading):
    result = await execute(trading, f'{{ balance(address: "{UNAPPROVED_WALLET}") {{ formattedBalance token {{ symbol }} }} }}')
    assert result.errors is None
    assert result.data["balance"] == {"formattedBalance": "100", "token": {"symbol": "ETH"}}


async def test_token_price_query(trading):
    result = await execute(trading, '{ tokenPrice(token: "UNI", quoteIn: "ETH") { price quoteCurrency liquidityEth } }')
    assert result.errors is None
    assert result.data["tokenPrice"] == {"price": "0.004", "quoteCurrency": "ETH", "liquidityEth": "2000"}


async def test_swap_tokens_query(trading):
    query = f'''{{
        swapTokens(fromToken: "WETH", toToken: "USDC", amount: "1", walletAddress: "{UNAPPROVED_WALLET}") {{
            simulationSuccess revertCode gasEstimate route {{ protocol path }}
        }}
    }}'''
    result = await execute(trading, query)
    assert result.errors is None
    swap = result.data["swapTokens"]
    assert swap["simulationSuccess"] is False
    assert swap["revertCode"] == "TRANSFER_FROM_FAILED"
    assert swap["gasEstimate"] is None
    assert swap["route"]["protocol"] == "Uniswap V2"


async def test_available_tokens_query(trading):
    result = await execute(trading, "{ availableTokens { symbol decimals } }")
    assert {"symbol": "USDC", "decimals": 6} in result.data["availableTokens"]


async def test_engine_errors_carry_their_kind(trading):
    result = await execute(trading, '{ tokenPrice(token: "NOPE") { price } }')
    assert result.data is None
    assert result.errors[0].extensions["kind"] == "UnknownToken"
    assert result.errors[0].extensions["token"] == "NOPE"


def test_graphql_endpoint(monkeypatch):
    monkeypatch.setenv("TEST_MODE", "true")
    monkeypatch.setenv("RESERVE_CACHE_TTL", "0")
    monkeypatch.delenv("REDIS_URL", raising=False)

    from main import app

    with TestClient(app) as client:
        response = client.post("/graphql", json={"query": '{ tokenPrice(token: "WBTC") { price } }'})
    assert response.status_code == 200
    assert response.json()["data"]["tokenPrice"]["price"] == "40000"
