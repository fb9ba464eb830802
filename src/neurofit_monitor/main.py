"""Command-line entry point: serve the API, create tables or train the mood network."""

from __future__ import annotations

import argparse
import asyncio
import sys

import uvicorn

from neurofit_monitor.config import get_settings
from neurofit_monitor.logger import setup_logging


def _train(fresh: bool, epochs: int | None) -> int:
    """Train the mood network and store the checkpoint.  Returns an exit code."""
    from neurofit_monitor.session import create_session

    settings = get_settings()
    if epochs is not None:
        settings = settings.model_copy(update={"model_epochs": epochs})

    session = create_session(settings)
    model = session.model
    try:
        future = model.start(wait=True, restore=not fresh)
        if future is None:
            # Restored from disk: retrain on the stored corpus
            future = model.request_retrain(reason="cli")
            if future is not None:
                future.result()
        report = model.last_report
    finally:
        model.close()

    if not model.is_ready() or report is None:
        print("Training did not produce a model.", file=sys.stderr)
        return 1
    print(
        f"Trained {settings.model_id} v{model.version}: "
        f"{report.samples} samples, {report.epochs_run} epochs, "
        f"train acc {report.train_accuracy:.3f}, "
        f"val acc {report.val_accuracy if report.val_accuracy is not None else float('nan'):.3f}"
    )
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="neurofit-monitor",
        description="Mood classification and emergency escalation service for NeuroFit wearables.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── serve ─────────────────────────────────────────────────
    serve_parser = sub.add_parser("serve", help="Start the API server.")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true")

    # ── init-db ───────────────────────────────────────────────
    sub.add_parser("init-db", help="Create database tables.")

    # ── train ─────────────────────────────────────────────────
    train_parser = sub.add_parser("train", help="Train the mood network and save a checkpoint.")
    train_parser.add_argument("--fresh", action="store_true", help="Ignore any stored checkpoint.")
    train_parser.add_argument("--epochs", type=int, default=None)

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level)

    if args.command == "serve":
        uvicorn.run(
            "neurofit_monitor.api.server:app",
            host=args.host or settings.api_host,
            port=args.port or settings.api_port,
            reload=args.reload,
            log_config=None,  # keep the handlers installed by setup_logging
        )
    elif args.command == "init-db":
        from neurofit_monitor.storage.database import init_db

        asyncio.run(init_db())
        print("Database tables created.")
    elif args.command == "train":
        sys.exit(_train(args.fresh, args.epochs))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
