import json

import pytest

from clmharness.core.pools import Dialect
from clmharness.core.recovery import ConfigurationError
from clmharness.deployment import Deployment, is_set

from conftest import MUSD, POOL_USDT_MUSD, USDT


def test_dialect_parsed_from_alias():
    deployment = Deployment.model_validate({"dexes": {"x": {"dialect": "b"}, "y": {"dialect": "slot0"}}})

    assert deployment.dex("x").dialect == Dialect.ALGEBRA
    assert deployment.dex("y").dialect == Dialect.UNISWAP_V3


def test_find_pool_either_order(deployment):
    assert deployment.find_pool("quickswap", "USDT", "mUSD") == ("USDT_mUSD", POOL_USDT_MUSD)
    assert deployment.find_pool("quickswap", "musd", "usdt") == ("USDT_mUSD", POOL_USDT_MUSD)
    assert deployment.find_pool("quickswap", "USDC", "mUSD") is None


def test_symbol_lookups(deployment):
    assert deployment.token_address("musd") == MUSD
    assert deployment.symbol_for(USDT.upper().replace("0X", "0x")) == "USDT"
    assert deployment.symbol_for("0x" + "ee" * 20) is None
    with pytest.raises(ConfigurationError):
        deployment.token_address("DAI")


def test_dex_names_are_case_insensitive():
    deployment = Deployment.model_validate({"dexes": {"QuickSwap": {"dialect": "algebra"}}})

    assert deployment.dex("QuickSwap").dialect == Dialect.ALGEBRA
    assert deployment.dex("quickswap") is deployment.dex("QUICKSWAP")


def test_unknown_dex(deployment):
    with pytest.raises(ConfigurationError):
        deployment.dex("uniswap")


def test_usable_vaults_skip_zero_addresses(deployment):
    assert [v.name for v in deployment.usable_vaults()] == ["QuickSwap USDT-mUSD"]
    assert deployment.pool_for_vault(deployment.vault("QuickSwap USDT-mUSD")) == POOL_USDT_MUSD
    assert not is_set("0x0000000000000000000000000000000000000000")
    assert not is_set(None)


def test_load(tmp_path, deployment):
    path = tmp_path / "deployment.json"
    path.write_text(json.dumps(deployment.model_dump(mode="json")))

    loaded = Deployment.load(path)

    assert loaded.dex("quickswap").pool_deployer == deployment.dex("quickswap").pool_deployer
    assert len(loaded.vaults) == 2


def test_load_errors(tmp_path):
    with pytest.raises(ConfigurationError):
        Deployment.load(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ConfigurationError):
        Deployment.load(bad)
