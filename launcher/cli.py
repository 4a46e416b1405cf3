"""
Command line entry point for launching an mev-commit node.
"""
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import requests
from pydantic import ValidationError

from core.artifact import (
    DEFAULT_METADATA_URL,
    DEFAULT_RELEASE_BASE_URL,
    ArtifactFetcher,
    fetch_latest_version,
    host_platform,
    resolve_artifact,
)
from core.config import DEFAULT_DATA_DIR, DEFAULT_NODE_API_URL, NodeConfig, ProtocolGeneration, Role
from core.contracts import DEFAULT_CONTRACTS_URL, ContractAddressResolver
from core.errors import BootstrapError, ConfigurationError
from launcher.bootstrap import bootstrap

DEFAULT_RPC_URL = "https://chainrpc.testnet.mev-commit.xyz"

logger = logging.getLogger(__name__)


def _split_bootnodes(value: str) -> List[str]:
    return [b.strip() for b in value.split(",") if b.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Launch and register an mev-commit node.")
    parser.add_argument("--role", required=True, choices=[r.value for r in Role],
                        help="Role the node runs as.")
    parser.add_argument("--rpc-url", default=os.environ.get("MEV_COMMIT_RPC_URL", DEFAULT_RPC_URL),
                        help="Settlement chain RPC endpoint.")
    parser.add_argument("--bootnode", action="append", dest="bootnodes",
                        help="Bootnode multiaddress (repeatable).")
    parser.add_argument("--version", dest="node_version", default=os.environ.get("MEV_COMMIT_VERSION"),
                        help="Node release to run. Defaults to the latest release.")
    parser.add_argument("--binary", help="Use this node executable instead of downloading one (needs --version or --protocol).")
    parser.add_argument("--data-dir", type=Path,
                        default=Path(os.environ.get("MEV_COMMIT_DATA_DIR", DEFAULT_DATA_DIR)),
                        help="Directory the node writes its key to.")
    parser.add_argument("--contracts", choices=["none", "production", "dev"], default="none",
                        help="Where to resolve contract addresses passed to the node.")
    parser.add_argument("--contracts-url", default=DEFAULT_CONTRACTS_URL,
                        help="Contracts endpoint used with --contracts production.")
    parser.add_argument("--metadata-url", default=DEFAULT_METADATA_URL,
                        help="Release metadata endpoint used to find the latest version.")
    parser.add_argument("--release-url", default=DEFAULT_RELEASE_BASE_URL,
                        help="Base URL release archives are downloaded from.")
    parser.add_argument("--protocol", choices=["auto"] + [g.value for g in ProtocolGeneration], default="auto",
                        help="Registration flow; 'auto' derives it from the node version.")
    parser.add_argument("--node-api", default=DEFAULT_NODE_API_URL,
                        help="Local HTTP API of the node.")
    parser.add_argument("--funding-timeout", type=float, default=None,
                        help="Give up waiting for funds after this many seconds (default: wait forever).")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def build_config(args: argparse.Namespace, session: requests.Session) -> NodeConfig:
    """Resolve version, executable and contracts into one immutable config"""
    version = args.node_version
    if version is None and args.binary is not None and args.protocol == "auto":
        # the latest release says nothing about a local executable
        raise ConfigurationError("--binary needs --version or an explicit --protocol")
    if version is None and args.binary is None:
        version = fetch_latest_version(args.metadata_url, session=session)

    if args.protocol != "auto":
        protocol = ProtocolGeneration(args.protocol)
    else:
        protocol = ProtocolGeneration.for_version(version)

    if args.binary:
        binary = Path(args.binary)
    else:
        os_name, arch = host_platform()
        descriptor = resolve_artifact(os_name, arch, version)
        fetcher = ArtifactFetcher(args.data_dir / "bin", base_url=args.release_url, session=session)
        binary = fetcher.fetch(descriptor)

    resolver = ContractAddressResolver(session=session)
    contracts = None
    if args.contracts == "production":
        contracts = resolver.fetch(args.contracts_url)
    elif args.contracts == "dev":
        contracts = resolver.fetch_for_dev(args.rpc_url)

    bootnodes = args.bootnodes or _split_bootnodes(os.environ.get("MEV_COMMIT_BOOTNODES", ""))

    return NodeConfig(
        rpc_endpoint=args.rpc_url,
        role=Role(args.role),
        binary=binary,
        bootnodes=tuple(bootnodes),
        contracts=contracts,
        data_dir=args.data_dir,
        node_api_url=args.node_api,
        protocol=protocol,
        funding_timeout=args.funding_timeout,
    )


def _print_registration(result):
    print(f"--- {result.role.value.capitalize()} Registration ---")
    print(result.detail)
    if result.tx_hash:
        print(f"Transaction: {result.tx_hash}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    session = requests.Session()
    try:
        config = build_config(args, session)
        status = bootstrap(config, session=session, on_registered=_print_registration)
    except BootstrapError as e:
        logger.error(f"Bootstrap aborted: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    if status != 0:
        print(f"Error: node exited with status {status}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
