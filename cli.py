from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import signal
import sys
import threading

import requests

from main import configure_logging, create_app
from nmr import db
from nmr.kube import SourceUnavailable
from nmr.settings import Settings, settings
from nmr.wiring import build_applier, build_reconciler, build_source


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {
        "kubeconfig": args.kubeconfig,
        "nginx_config": args.config,
        "systemctl": args.systemctl,
        "poll_interval_s": args.interval,
        "applier": args.applier,
    }
    return dataclasses.replace(settings, **{k: v for k, v in overrides.items() if v is not None})


def _cmd_run(cfg: Settings) -> int:
    db.init_db()
    rec = build_reconciler(cfg)
    stop = threading.Event()

    def _on_signal(signum, frame) -> None:
        print(f"Got signal: {signal.Signals(signum).name}")
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    rec.start()
    stop.wait()
    rec.stop()
    return 0


def _cmd_once(cfg: Settings) -> int:
    db.init_db()
    result = build_reconciler(cfg).run_once()
    _print(dataclasses.asdict(result))
    return 0 if result.ok else 1


def _cmd_render(cfg: Settings) -> int:
    db.init_db()
    applier = build_applier(cfg)
    try:
        current = build_source(cfg).fetch()
    except SourceUnavailable as e:
        print(f"membership unavailable: {e}", file=sys.stderr)
        return 1
    for item in applier.render(current):
        if isinstance(item, list):
            print(" ".join(["-A", cfg.ipt_chain, *item]))
        else:
            print(item)
    return 0


def _cmd_serve(cfg: Settings, host: str, port: int) -> int:
    import uvicorn

    uvicorn.run(create_app(build_reconciler(cfg)), host=host, port=port)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Node Membership Reconciler")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL (status/events)")
    p.add_argument("--kubeconfig", help="Path to the kubeconfig file (default: NMR_KUBECONFIG or ~/.kube/config)")
    p.add_argument("--applier", choices=["firewall", "proxy"], help="Downstream target to reconcile")
    p.add_argument("--config", help="Nginx upstream file (proxy applier)")
    p.add_argument("--systemctl", help="systemctl executable (proxy applier)")
    p.add_argument("--interval", type=int, help="Seconds between reconciliation cycles")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("run", help="Run the reconciliation loop until interrupted")
    sub.add_parser("once", help="Run a single reconciliation cycle")
    sub.add_parser("render", help="Print the artifact for the current membership without applying it")

    s_serve = sub.add_parser("serve", help="Run the loop together with the status API")
    s_serve.add_argument("--host", default="0.0.0.0")
    s_serve.add_argument("--port", type=int, default=8000)

    sub.add_parser("status", help="Show reconciler status from a running API")

    s_ev = sub.add_parser("events", help="Show events from a running API")
    s_ev.add_argument("--limit", type=int, default=20)

    args = p.parse_args(argv)

    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    base = args.api.rstrip("/")

    if args.cmd == "status":
        _print(requests.get(f"{base}/status", timeout=10).json())
        return 0

    if args.cmd == "events":
        _print(requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10).json())
        return 0

    cfg = _settings_from_args(args)

    if args.cmd == "run":
        return _cmd_run(cfg)

    if args.cmd == "once":
        return _cmd_once(cfg)

    if args.cmd == "render":
        return _cmd_render(cfg)

    if args.cmd == "serve":
        return _cmd_serve(cfg, args.host, args.port)

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
