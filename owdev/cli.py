#!/usr/bin/env python3
"""
owdev Command Line Interface

Usage:
    owdev serve --manifest <file> [--port <port>] [--no-watch]
    owdev verify --manifest <file>
    owdev urls --manifest <file> [--port <port>]
"""

import argparse
import socket
import sys
from typing import Dict, List, Optional

from .config import (
    ACTIONS_SRC,
    DEV_API_WEB_PREFIX,
    LOG_JSON,
    LOG_LEVEL,
    MANIFEST_PATH,
    SERVER_HOST,
    SERVER_PORT,
    WATCH_INTERVAL,
    export_platform_environ,
    is_debug,
    validate_config,
)
from .manifest import ManifestError, action_urls, load_manifest, verify_manifest


def find_free_port(preferred: int, host: str = "localhost") -> int:
    """The preferred port if it can be bound, otherwise any free port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, preferred))
            return preferred
        except OSError:
            pass
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


def split_action_urls(urls: Dict[str, str]) -> Dict[str, List[str]]:
    web = [url for url in urls.values() if f"/{DEV_API_WEB_PREFIX}/" in url]
    non_web = [url for url in urls.values() if f"/{DEV_API_WEB_PREFIX}/" not in url]
    return {"web": web, "non_web": non_web}


def print_action_urls(urls: Dict[str, str]) -> None:
    groups = split_action_urls(urls)
    print("Your actions:")
    print("web actions:")
    for url in groups["web"]:
        print(f"  -> {url}")
    print("non-web actions:")
    for url in groups["non_web"]:
        print(f"  -> {url}")


def _load_verified(path: str):
    manifest = load_manifest(path)
    verify_manifest(manifest)
    return manifest


def cmd_verify(args) -> int:
    """Verify that a manifest can be served."""
    try:
        manifest = _load_verified(args.manifest)
    except ManifestError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1
    count = sum(len(p.actions) + len(p.sequences) for p in manifest.packages.values())
    print(f"✓ {args.manifest}: {len(manifest.packages)} package(s), {count} action(s)/sequence(s)")
    return 0


def cmd_urls(args) -> int:
    """Print the local URL of every action."""
    try:
        manifest = load_manifest(args.manifest)
    except ManifestError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1
    print_action_urls(action_urls(manifest, host=args.host, port=args.port))
    return 0


def cmd_serve(args) -> int:
    """Run the development server."""
    import uvicorn

    from .loader import CodeLoader
    from .logging_config import configure_logging
    from .main import create_app
    from .watcher import ActionWatcher

    verbose = args.verbose or is_debug()
    configure_logging(
        level="DEBUG" if verbose else args.log_level,
        json_format=args.json_logs,
        log_file=args.log_file,
    )

    try:
        manifest = _load_verified(args.manifest)
    except ManifestError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    export_platform_environ()

    port = find_free_port(args.port, args.host)
    if port != args.port:
        print(f"Could not use server port {args.port}, using port {port} instead", file=sys.stderr)

    loader = CodeLoader()
    app = create_app(manifest, loader=loader)

    watcher = None
    watch = not args.no_watch
    if watch and not validate_config(args.manifest, args.actions_src)["actions_src"]:
        print(f"Action sources {args.actions_src} not found, not watching for changes", file=sys.stderr)
        watch = False
    if watch:
        watcher = ActionWatcher(args.actions_src, manifest, loader=loader, interval=WATCH_INTERVAL)
        watcher.start()

    print_action_urls(action_urls(manifest, host=args.host, port=port))
    print("press CTRL+C to terminate the dev environment")
    try:
        uvicorn.run(app, host=args.host, port=port, log_level="debug" if verbose else "info")
    finally:
        if watcher is not None:
            watcher.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="owdev",
        description="Local development server for web actions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  owdev serve -m manifest.yml             Serve actions on $PORT or port 9080
  owdev serve -m manifest.yml -p 8080 --no-watch
  owdev verify -m manifest.yml
  owdev urls -m manifest.yml
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the development server")
    serve_parser.add_argument("-m", "--manifest", default=MANIFEST_PATH, help="Manifest YAML/JSON file")
    serve_parser.add_argument("-H", "--host", default=SERVER_HOST, help="Host to bind")
    serve_parser.add_argument("-p", "--port", type=int, default=SERVER_PORT, help="Preferred port")
    serve_parser.add_argument("-s", "--actions-src", default=ACTIONS_SRC, help="Action sources to watch")
    serve_parser.add_argument("--no-watch", action="store_true", help="Do not watch action sources")
    serve_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    serve_parser.add_argument("--log-level", default=LOG_LEVEL, help="Log level")
    serve_parser.add_argument("--json-logs", action="store_true", default=LOG_JSON, help="JSON log lines")
    serve_parser.add_argument("--log-file", help="Also write logs to this file")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify a manifest")
    verify_parser.add_argument("-m", "--manifest", default=MANIFEST_PATH, help="Manifest YAML/JSON file")

    # urls
    urls_parser = subparsers.add_parser("urls", help="List action URLs")
    urls_parser.add_argument("-m", "--manifest", default=MANIFEST_PATH, help="Manifest YAML/JSON file")
    urls_parser.add_argument("-H", "--host", default=SERVER_HOST, help="Host name")
    urls_parser.add_argument("-p", "--port", type=int, default=SERVER_PORT, help="Port")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        return cmd_serve(args)
    elif args.command == "verify":
        return cmd_verify(args)
    elif args.command == "urls":
        return cmd_urls(args)
    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
