"""Tests for node configuration loading and the CLI helpers."""

from __future__ import annotations

import json

import pytest

from gossip_discovery.cli import env_overrides, load_config, parse_args, split_peers
from gossip_discovery.network.discovery import ConfigurationError
from gossip_discovery.network.peer import PeerId
from gossip_discovery.node import Node, NodeConfig


class TestNodeConfig:
    def test_defaults(self):
        config = NodeConfig.from_dict({})
        assert config.port == 8470
        assert config.target_number_of_peers == 20
        assert config.bootstrap_peers == []

    def test_from_dict(self):
        config = NodeConfig.from_dict({
            "port": 9000,
            "peer_id": "QmMe",
            "bootstrap_peers": ["/ip4/1.2.3.4/tcp/1/p2p/QmA"],
            "target_number_of_peers": 3,
            "dial_timeout": None,
        })
        assert config.port == 9000
        assert config.discovery_config().target_number_of_peers == 3
        assert config.discovery_config().dial_timeout is None

    def test_invalid_target(self):
        with pytest.raises(ConfigurationError):
            NodeConfig(target_number_of_peers=0).discovery_config()


class TestLoadConfig:
    def test_file_and_overrides(self, tmp_path):
        path = tmp_path / "node.json"
        path.write_text(json.dumps({"port": 9000, "target_number_of_peers": 8}))
        config = load_config(str(path), {"port": 9001})
        assert config.port == 9001
        assert config.target_number_of_peers == 8

    def test_no_file(self):
        assert load_config(None, {"target_number_of_peers": 4}).target_number_of_peers == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(str(tmp_path / "nope.json"), {})

    def test_invalid_override(self):
        with pytest.raises(ConfigurationError):
            load_config(None, {"target_number_of_peers": -1})


class TestCliHelpers:
    def test_split_peers(self):
        assert split_peers(" /ip4/a , ,/ip4/b") == ["/ip4/a", "/ip4/b"]

    def test_env_overrides(self):
        overrides = env_overrides({
            "GOSSIP_PORT": "9100",
            "GOSSIP_PEERS": "/ip4/1.2.3.4/tcp/1/p2p/QmA",
            "GOSSIP_TARGET": "12",
        })
        assert overrides == {
            "port": 9100,
            "bootstrap_peers": ["/ip4/1.2.3.4/tcp/1/p2p/QmA"],
            "target_number_of_peers": 12,
        }

    def test_env_overrides_empty(self):
        assert env_overrides({}) == {}

    def test_parse_args(self):
        args = parse_args(["--port", "9000", "--target", "3", "-l", "DEBUG"])
        assert args.port == 9000
        assert args.target == 3
        assert args.log_level == "DEBUG"


class TestNode:
    def test_bootstrap_peers_seed_book(self):
        node = Node(NodeConfig(
            peer_id="QmMe",
            bootstrap_peers=[
                "/ip4/1.2.3.4/tcp/1/p2p/QmA",
                "/ip4/1.2.3.4/tcp/2",  # no peer id, skipped
                "/ip4/127.0.0.1/tcp/8470/p2p/QmMe",  # ourselves, skipped
            ],
        ))
        assert node.add_bootstrap_peers() == 1
        assert PeerId("QmA") in node.peer_book
        assert len(node.peer_book) == 1

    def test_shared_peer_book(self):
        node = Node(NodeConfig())
        assert node.transport.peer_book is node.peer_book
        assert node.discovery.host is node.transport
