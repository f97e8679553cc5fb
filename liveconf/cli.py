"""
Single entry point for liveconf: serve, check, reload-config, health, version, configure.
"""

import argparse
import json
import sys
import urllib.error
import urllib.request
from pathlib import Path

from liveconf import __version__


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the FastAPI server (Uvicorn). Host/port from config/liveconf.yaml or args."""
    from liveconf.config.loader import get_settings
    settings = get_settings()
    host = args.host if args.host is not None else settings.host
    port = args.port if args.port is not None else settings.port
    import errno
    import uvicorn
    try:
        uvicorn.run("liveconf.main:app", host=host, port=port, log_config=None)
    except OSError as e:
        if e.errno == errno.EADDRINUSE:
            print(f"Port {port} is already in use. Stop the existing server first", file=sys.stderr)
            print(f"Or use another port: liveconf serve --port {port + 1}", file=sys.stderr)
        raise
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Load and validate every config document once (no watching); print one line per domain."""
    from liveconf.config.loader import get_settings
    from liveconf.config.logging import configure_logging
    from liveconf.coordinator import ReloadCoordinator
    from liveconf.errors import ConfigSourceError
    from liveconf.loader import ConfigLoader
    from liveconf.sources import FileSource
    from liveconf.store import SnapshotStore

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    config_dir = args.config_dir or settings.config_dir
    source = FileSource(config_dir, fmt=settings.source_format)
    coordinator = ReloadCoordinator(SnapshotStore(), ConfigLoader(settings.source_format), source)
    failed = 0
    for domain in coordinator.domains:
        try:
            _, version = coordinator.fetch(domain)
        except ConfigSourceError as e:
            print(f"  {domain.value}: FAIL ({type(e).__name__}) {e.reason}")
            failed += 1
        else:
            print(f"  {domain.value}: OK ({source.path(domain).name}, version {version})")
    print(f"\n{len(coordinator.domains) - failed}/{len(coordinator.domains)} documents valid in {Path(config_dir).resolve()}")
    return 1 if failed else 0


def cmd_reload_config(args: argparse.Namespace) -> int:
    """Trigger a forced reload of every domain (POST /api/config/reload)."""
    url = f"{args.base_url.rstrip('/')}/api/config/reload"
    req = urllib.request.Request(url, method="POST")
    with urllib.request.urlopen(req, timeout=args.timeout) as r:
        data = json.loads(r.read().decode())
    for name, result in data.get("domains", {}).items():
        line = f"  {name}: {result['status']}"
        if result.get("error"):
            line += f" ({result['error']})"
        print(line)
    return 0 if data.get("status") == "ok" else 1


def cmd_health(args: argparse.Namespace) -> int:
    """Check /health (readiness)."""
    url = f"{args.base_url.rstrip('/')}/health"
    try:
        with urllib.request.urlopen(url, timeout=5) as r:
            print(r.read().decode())
            return 0 if r.status == 200 else 1
    except urllib.error.HTTPError as e:
        print(e.read().decode(), file=sys.stderr)
        return 1


def cmd_version(_: argparse.Namespace) -> int:
    """Print version."""
    print(__version__)
    return 0


def cmd_configure(args: argparse.Namespace) -> int:
    """Create liveconf.yaml from liveconf.yaml.example in the config directory if missing."""
    config_dir = Path(args.config_dir or "config")
    example = config_dir / "liveconf.yaml.example"
    target = config_dir / "liveconf.yaml"
    config_dir.mkdir(parents=True, exist_ok=True)
    if target.exists():
        print(f"{target} already exists.")
    elif example.exists():
        target.write_text(example.read_text())
        print(f"Created: {target}. Edit it to set watch_strategy, poll interval, redis_url, port.")
    else:
        print(f"Warning: {example} not found.", file=sys.stderr)
        return 1
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="liveconf",
        description="liveconf: live configuration hot-reload service (serve, check, reload-config, health, version).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # serve (host/port from config/liveconf.yaml or --host/--port)
    p_serve = sub.add_parser("serve", help="Start the API server (Uvicorn)")
    p_serve.add_argument("--host", default=None, help="Bind host (default: from config/liveconf.yaml)")
    p_serve.add_argument("--port", type=int, default=None, help="Bind port (default: from config/liveconf.yaml)")
    p_serve.set_defaults(func=cmd_serve)

    # check
    p_check = sub.add_parser("check", help="Validate every config document once and exit")
    p_check.add_argument("--config-dir", default=None, help="Directory with the documents (default: from settings)")
    p_check.set_defaults(func=cmd_check)

    # reload-config
    p_reload = sub.add_parser("reload-config", help="POST /api/config/reload (force reload of every domain)")
    p_reload.add_argument("--base-url", default="http://localhost:8000", help="API base URL")
    p_reload.add_argument("--timeout", type=float, default=30, help="Seconds to wait for the reload report")
    p_reload.set_defaults(func=cmd_reload_config)

    # health
    p_health = sub.add_parser("health", help="GET /health (readiness check)")
    p_health.add_argument("--base-url", default="http://localhost:8000", help="API base URL")
    p_health.set_defaults(func=cmd_health)

    # version
    p_version = sub.add_parser("version", help="Print version")
    p_version.set_defaults(func=cmd_version)

    # configure
    p_configure = sub.add_parser("configure", help="Create config/liveconf.yaml from the example if missing")
    p_configure.add_argument("--config-dir", default=None, help="Config directory (default: config)")
    p_configure.set_defaults(func=cmd_configure)

    args = parser.parse_args()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
