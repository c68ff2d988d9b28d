"""Node selection and environment configuration."""

import sys
from pathlib import Path

import pytest
import tomlkit

from fuel_deploy import MIN_PYTHON_VERSION
from fuel_deploy.config import DEFAULT_NODE_URL, DeployConfig, NodeTargetError, get_graphql_url, get_node_url


def test_node_url_default():
    assert get_node_url(DeployConfig()) == DEFAULT_NODE_URL


def test_node_url_from_manifest():
    assert get_node_url(DeployConfig(), "https://manifest.example") == "https://manifest.example"


def test_node_url_option_wins_over_manifest():
    assert get_node_url(DeployConfig(node_url="http://mine:4000"), "https://manifest.example") == "http://mine:4000"


def test_testnet_and_target():
    assert get_node_url(DeployConfig(testnet=True)) == "https://testnet.fuel.network"
    assert get_node_url(DeployConfig(target="Mainnet")) == "https://mainnet.fuel.network"


def test_unknown_target():
    with pytest.raises(NodeTargetError):
        get_node_url(DeployConfig(target="moon"))


def test_only_one_node_option():
    with pytest.raises(NodeTargetError):
        get_node_url(DeployConfig(testnet=True, node_url="http://mine:4000"))


@pytest.mark.parametrize(
    "url, expected",
    [
        ("http://127.0.0.1:4000", "http://127.0.0.1:4000/v1/graphql"),
        ("http://127.0.0.1:4000/", "http://127.0.0.1:4000/v1/graphql"),
        ("https://testnet.fuel.network/v1/graphql", "https://testnet.fuel.network/v1/graphql"),
    ],
)
def test_graphql_url(url, expected):
    assert get_graphql_url(url) == expected


def test_from_environment(monkeypatch):
    monkeypatch.setenv("FUEL_NODE_URL", "http://env:4000")
    monkeypatch.setenv("SIGNING_KEY", "0x" + "11" * 32)
    monkeypatch.setenv("FUEL_WALLET_PASSWORD", "pw")

    config = DeployConfig.from_environment(node_url="http://arg:4000")

    assert config.node_url == "http://arg:4000"
    assert config.signing_key == "0x" + "11" * 32
    assert config.wallet_password == "pw"
    assert config.uses_manual_signing


def test_bad_max_contract_size():
    with pytest.raises(AssertionError):
        DeployConfig(max_contract_size=0)


def test_min_python_version_matches_packaging():
    pyproject = tomlkit.parse((Path(__file__).parent.parent / "pyproject.toml").read_text(encoding="utf-8"))
    major, minor = MIN_PYTHON_VERSION
    assert pyproject["project"]["requires-python"] == f">={major}.{minor}"
    assert sys.version_info[:2] >= MIN_PYTHON_VERSION
