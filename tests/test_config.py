import pytest
from pydantic import ValidationError

from ethtrade.config import Settings


def test_defaults_point_at_uniswap_v2_mainnet():
    settings = Settings(_env_file=None)
    assert settings.FACTORY_ADDRESS == "0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f"
    assert settings.ROUTER_ADDRESS == "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"
    assert settings.FEE_BPS == 30
    assert settings.MAX_INPUT_RESERVE_BPS == 5000


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("TEST_MODE", "1")
    monkeypatch.setenv("DEFAULT_SLIPPAGE_BPS", "100")
    settings = Settings(_env_file=None)
    assert settings.TEST_MODE is True
    assert settings.DEFAULT_SLIPPAGE_BPS == 100


@pytest.mark.parametrize("field, value", [
    ("DEFAULT_SLIPPAGE_BPS", 10000),
    ("FEE_BPS", -1),
    ("MAX_INPUT_RESERVE_BPS", 0),
    ("TEST_BALANCE", "-5"),
    ("TEST_BALANCE", "lots"),
    ("ROUTER_ADDRESS", "0x0000000000000000000000000000000000000000"),
    ("WETH_ADDRESS", "0x1234"),
])
def test_rejects_bad_values(field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_settings_are_frozen():
    settings = Settings(_env_file=None)
    with pytest.raises(ValidationError):
        settings.FEE_BPS = 25
