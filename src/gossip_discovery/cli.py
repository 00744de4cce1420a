"""CLI entry point for launching a gossip discovery node.

Usage:
    gossip-discovery --port 8471
    gossip-discovery --config node_config.json
    gossip-discovery --peers /ip4/192.168.1.10/tcp/8470/p2p/<id> --target 50

Environment variables:
    GOSSIP_PORT:    Override listening port
    GOSSIP_PEERS:   Comma-separated bootstrap peer addresses
    GOSSIP_TARGET:  Override target number of peers
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any

from gossip_discovery.network.discovery import ConfigurationError
from gossip_discovery.network.events import PeerAdmitted, PeerSuspect
from gossip_discovery.node import Node, NodeConfig

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Launch a node that discovers peers by gossip",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to JSON config file",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        help="Override listening port",
    )
    parser.add_argument(
        "--peers",
        help="Comma-separated bootstrap peer addresses (multiaddr with /p2p/<id>)",
    )
    parser.add_argument(
        "--target", "-t",
        type=int,
        help="Target number of peers to discover",
    )
    parser.add_argument(
        "--log-level", "-l",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    return parser.parse_args(argv)


def split_peers(value: str) -> list[str]:
    return [p.strip() for p in value.split(",") if p.strip()]


def env_overrides(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Collect overrides from GOSSIP_* environment variables."""
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    if environ.get("GOSSIP_PORT"):
        overrides["port"] = int(environ["GOSSIP_PORT"])
    if environ.get("GOSSIP_PEERS"):
        overrides["bootstrap_peers"] = split_peers(environ["GOSSIP_PEERS"])
    if environ.get("GOSSIP_TARGET"):
        overrides["target_number_of_peers"] = int(environ["GOSSIP_TARGET"])
    return overrides


def load_config(config_path: str | None, overrides: dict[str, Any]) -> NodeConfig:
    """Load node configuration from JSON, then apply overrides.

    Raises:
        ConfigurationError: If the file is missing or the result is invalid.
    """
    raw: dict[str, Any] = {}
    if config_path:
        path = Path(config_path).resolve()
        if not path.exists():
            raise ConfigurationError(f"config file not found: {path}")
        with open(path) as f:
            raw = json.load(f)

    raw.update(overrides)
    config = NodeConfig.from_dict(raw)
    config.discovery_config()  # validate
    return config


async def log_events(node: Node) -> None:
    """Log discovery events until cancelled."""
    queue = node.discovery.subscribe()
    try:
        while True:
            event = await queue.get()
            if isinstance(event, PeerAdmitted):
                logger.info(
                    "Discovered peer %s (%d known)",
                    event.record.peer_id, len(node.peer_book),
                )
            elif isinstance(event, PeerSuspect):
                logger.warning("Evicted suspect peer %s: %s", event.peer_id, event.reason)
    finally:
        node.discovery.events.unsubscribe(queue)


async def run_node(node: Node) -> None:
    """Start the node and run until interrupted."""
    events = asyncio.create_task(log_events(node))
    await node.start()

    # Handle graceful shutdown
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def handle_signal() -> None:
        print("\nShutting down...")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    await stop_event.wait()
    await node.stop()
    events.cancel()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    overrides = env_overrides()
    if args.port:
        overrides["port"] = args.port
    if args.peers:
        overrides["bootstrap_peers"] = split_peers(args.peers)
    if args.target is not None:
        overrides["target_number_of_peers"] = args.target

    try:
        config = load_config(args.config, overrides)
        node = Node(config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("=" * 60)
    print("  Gossip Discovery Node")
    print("=" * 60)
    print(f"  Peer id: {node.peer_id}")
    print(f"  Port: {config.port}")
    print(f"  Target peers: {config.target_number_of_peers}")
    print(f"  Bootstrap peers: {len(config.bootstrap_peers)}")
    for address in node.addresses:
        print(f"  Address: {address}")
    print("=" * 60 + "\n")

    asyncio.run(run_node(node))


if __name__ == "__main__":
    main()
