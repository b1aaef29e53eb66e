#!/usr/bin/env python3
"""
assetreg CLI

Command-line interface for the asset registration service:
  assetreg serve            - Run the HTTP server
  assetreg upload <file>    - Upload a file and register its CID
  assetreg register <cid>   - Register a CID obtained elsewhere
  assetreg get <handle>     - Look up the CID for a handle
  assetreg count            - Number of registrations
  assetreg list             - List registrations
  assetreg verify-log <log> - Replay a registration log and report
  assetreg actor create <u> - Create a signing actor

upload/register/get/count/list act on the local data directory, or on a
running server when --server is given.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .activitypub import ActorStore
from .client import RegistryClient
from .config import Config, load_config
from .errors import ContentStoreError, RegistryError
from .registry import AssetRegistry, FileLog
from .server import RegistryServer
from .service import build_service


def _config(args) -> Config:
    config = load_config(args.config)
    return config.with_overrides(
        data_dir=Path(args.data_dir) if args.data_dir else None,
        host=getattr(args, "host", None),
        port=getattr(args, "port", None),
        ipfs_api_url=getattr(args, "ipfs_api_url", None),
        actor=getattr(args, "actor", None),
        strict_cids=True if getattr(args, "strict", False) else None,
    )


def _client(args) -> RegistryClient:
    return RegistryClient(args.server)


def _local_registry(args) -> AssetRegistry:
    """Registry over the local log, opened without write access."""
    return AssetRegistry(FileLog(_config(args).log_path), read_only=True)


def _print_record(record):
    print(f"{record.handle}\t{record.cid}")


def cmd_serve(args):
    """Run the HTTP server."""
    config = _config(args)
    service = build_service(config)
    print(f"Data directory: {config.data_dir}")
    print(f"Registrations: {service.registry.count()}")
    server = RegistryServer(
        service,
        host=config.host,
        port=config.port,
        max_upload_bytes=config.max_upload_bytes,
    )
    server.start()


def cmd_upload(args):
    """Upload a file and register it."""
    path = Path(args.file)
    if args.server:
        record = _client(args).upload_file(path, args.registrant)
    else:
        record = build_service(_config(args)).register_file(path, args.registrant)
    print(f"CID: {record.cid}")
    print(f"Handle: {record.handle}")


def cmd_register(args):
    """Register a CID."""
    if args.server:
        record = _client(args).register_record(args.cid, args.registrant)
    else:
        record = build_service(_config(args)).register_cid(args.cid, args.registrant)
    print(f"Handle: {record.handle}")


def cmd_get(args):
    """Look up a handle."""
    if args.server:
        record = _client(args).get(args.handle)
    else:
        record = _local_registry(args).get(args.handle)

    if record is None:
        print(f"Handle {args.handle} not found", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(record.to_dict(), indent=2))
    else:
        print(record.cid)


def cmd_count(args):
    """Print the number of registrations."""
    if args.server:
        print(_client(args).count())
    else:
        print(_local_registry(args).count())


def cmd_list(args):
    """List registrations."""
    if args.server:
        records = _client(args).list(cid=args.cid)
    else:
        registry = _local_registry(args)
        records = registry.find_by_cid(args.cid) if args.cid else registry.list()

    for record in records:
        _print_record(record)


def cmd_verify_log(args):
    """Replay a log file and report its state."""
    log = FileLog(args.log)
    registry = AssetRegistry(log, read_only=True)
    print(f"Log: {args.log}")
    print(f"Registrations: {registry.count()}")
    print(f"Next handle: {registry.count()}")
    distinct = len({r.cid for r in registry})
    print(f"Distinct CIDs: {distinct}")
    if log.torn_bytes:
        print(f"Torn tail: {log.torn_bytes} bytes (not repaired)")


def cmd_actor_create(args):
    """Create a signing actor."""
    config = _config(args)
    store = ActorStore(config.actors_dir, domain=config.domain)
    try:
        actor = store.create(args.username)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"Actor: {actor.id}")
    print(f"Key: {actor.key_id}")


def _add_remote(parser):
    parser.add_argument("--server", help="Server URL (default: use local data directory)")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="assetreg",
        description="Asset registration service - content-addressed uploads with sequential handles",
    )
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--data-dir", help="Data directory (log, blobs, actors)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, help="Port to bind to")
    serve_parser.add_argument("--ipfs-api-url", help="IPFS RPC URL (default: local blob store)")
    serve_parser.add_argument("--actor", help="Username of the actor that signs events")
    serve_parser.add_argument("--strict", action="store_true", help="Reject malformed CIDs")

    # upload command
    upload_parser = subparsers.add_parser("upload", help="Upload a file and register its CID")
    upload_parser.add_argument("file", help="File to upload")
    upload_parser.add_argument("--registrant", help="Actor ID to attribute the registration to")
    upload_parser.add_argument("--ipfs-api-url", help="IPFS RPC URL (default: local blob store)")
    _add_remote(upload_parser)

    # register command
    register_parser = subparsers.add_parser("register", help="Register a CID")
    register_parser.add_argument("cid", help="Content identifier")
    register_parser.add_argument("--registrant", help="Actor ID to attribute the registration to")
    register_parser.add_argument("--strict", action="store_true", help="Reject malformed CIDs")
    _add_remote(register_parser)

    # get command
    get_parser = subparsers.add_parser("get", help="Look up the CID for a handle")
    get_parser.add_argument("handle", type=int, help="Handle")
    get_parser.add_argument("--json", action="store_true", help="Print the full record")
    _add_remote(get_parser)

    # count command
    count_parser = subparsers.add_parser("count", help="Number of registrations")
    _add_remote(count_parser)

    # list command
    list_parser = subparsers.add_parser("list", help="List registrations")
    list_parser.add_argument("--cid", help="Only registrations of this CID")
    _add_remote(list_parser)

    # verify-log command
    verify_parser = subparsers.add_parser("verify-log", help="Replay a registration log")
    verify_parser.add_argument("log", help="Path to registrations.jsonl")

    # actor command
    actor_parser = subparsers.add_parser("actor", help="Manage signing actors")
    actor_subparsers = actor_parser.add_subparsers(dest="actor_command")
    actor_create_parser = actor_subparsers.add_parser("create", help="Create an actor")
    actor_create_parser.add_argument("username", help="Username")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    commands = {
        "serve": cmd_serve,
        "upload": cmd_upload,
        "register": cmd_register,
        "get": cmd_get,
        "count": cmd_count,
        "list": cmd_list,
        "verify-log": cmd_verify_log,
    }

    try:
        if args.command in commands:
            commands[args.command](args)
        elif args.command == "actor" and args.actor_command == "create":
            cmd_actor_create(args)
        else:
            parser.print_help()
            sys.exit(1)
    except (RegistryError, ContentStoreError, ConnectionError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
