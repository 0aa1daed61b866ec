from __future__ import annotations

import argparse
import json
import logging
import subprocess
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .config import Config
from .feed import build_feed
from .forms import PostingDraft, to_listing_record, validate_all
from .promotions import bundle_price, new_promotion, parse_promotion_type
from .report import render_md, write_report
from .rotation import fair_share
from .schema import Listing
from .storage import Storage

log = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _load_records(path: str) -> list[dict]:
    text = Path(path).read_text(encoding="utf-8")
    if path.endswith((".yaml", ".yml")):
        data = yaml.safe_load(text) or []
    else:
        data = json.loads(text)
    if isinstance(data, dict):
        data = data.get("listings", [])
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of listings")
    return data


def import_listings(config_path: str, path: str) -> int:
    cfg = Config.from_yaml(config_path)
    storage = Storage(cfg.app.database_path)
    count = storage.import_records(_load_records(path))
    log.info("Imported %d listings from %s (%d stored)", count, path, storage.count())
    return count


def feed(
    config_path: str,
    filters: dict,
    limit: int | None = None,
    offset: int = 0,
    rotate: bool = False,
    output: str | None = None,
) -> None:
    cfg = Config.from_yaml(config_path)
    storage = Storage(cfg.app.database_path)

    result = build_feed(storage, cfg, filters, limit, offset, rotate=rotate)
    md = render_md(
        result.plan,
        currency=cfg.app.currency,
        monthly_payments=result.monthly_payments,
    )
    path = output or cfg.app.report_path
    write_report(path, md)

    b = result.buckets
    log.info(
        "Feed built: %d featured, %d top spot, %d boosted, %d regular. Report written to %s",
        len(b.featured),
        len(b.top_spot),
        len(b.boosted),
        len(b.regular),
        path,
    )


def promote(config_path: str, listing_id: str, types: list[str], payment_id: str | None) -> None:
    cfg = Config.from_yaml(config_path)
    storage = Storage(cfg.app.database_path)
    if storage.get_listing(listing_id) is None:
        raise ValueError(f"Listing '{listing_id}' not found")

    pricing = cfg.promotions.pricing
    parsed = [parse_promotion_type(t) for t in types]
    for ptype in parsed:
        storage.add_promotion(new_promotion(listing_id, ptype, pricing=pricing, payment_id=payment_id))
    storage.refresh_listing_promotions(listing_id)
    log.info(
        "Listing %s promoted with %s, total %s %.0f",
        listing_id,
        ", ".join(t.value for t in parsed),
        cfg.app.currency,
        bundle_price(parsed, pricing),
    )


def maintain(config_path: str, action: str = "all") -> None:
    cfg = Config.from_yaml(config_path)
    storage = Storage(cfg.app.database_path)
    if action in ("expire", "all"):
        storage.expire_promotions()
    if action in ("boost", "all"):
        storage.apply_daily_boost()
    if action in ("rotation", "all"):
        storage.reset_rotation_scores()


def show_fair_share(config_path: str, listing_id: str) -> None:
    cfg = Config.from_yaml(config_path)
    storage = Storage(cfg.app.database_path)
    promos = storage.active_promotions(listing_id=listing_id)
    if not promos:
        raise ValueError(f"Listing '{listing_id}' has no active promotions")
    for promo in promos:
        report = fair_share(promo, storage.count_active(promo.promotion_type), cfg=cfg.rotation)
        print(report.model_dump_json(indent=2))


def post(config_path: str, draft_path: str, owner: str) -> Listing | None:
    cfg = Config.from_yaml(config_path)
    storage = Storage(cfg.app.database_path)

    draft = PostingDraft.from_json(Path(draft_path).read_text(encoding="utf-8"))
    errors = validate_all(draft)
    if errors:
        storage.save_draft(owner, draft)
        for field, message in errors.items():
            log.warning("%s: %s", field, message)
        log.info("Draft saved for %s with %d problems", owner, len(errors))
        return None

    listing = Listing.from_record(to_listing_record(draft))
    storage.upsert_listing(listing)
    storage.clear_draft(owner)
    log.info("Vehicle listed: %s (%s)", listing.title, listing.id)
    return listing


def export(config_path: str, output: str) -> None:
    cfg = Config.from_yaml(config_path)
    storage = Storage(cfg.app.database_path)
    write_report(output, storage.dump())
    log.info("Export complete: %d listings -> %s", storage.count(), output)


def dashboard(port: int = 8501) -> None:
    """Launch the Streamlit dashboard."""
    dashboard_path = Path(__file__).parent / "dashboard.py"
    cmd = [
        sys.executable, "-m", "streamlit", "run",
        str(dashboard_path),
        "--server.port", str(port),
        "--server.headless", "false",
    ]
    log.info("Launching dashboard on port %d", port)
    subprocess.run(cmd)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="classifieds",
        description="Promoted listing placement for a vehicle marketplace",
    )
    parser.add_argument("--config", default="config/config.yaml", help="Config file path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd")

    import_parser = sub.add_parser("import", help="Load listings from a JSON or YAML file")
    import_parser.add_argument("path", help="File holding a list of listing records")

    feed_parser = sub.add_parser("feed", help="Build one page of the listings feed")
    feed_parser.add_argument("--vehicle-type")
    feed_parser.add_argument("--make")
    feed_parser.add_argument("--model")
    feed_parser.add_argument("--min-price", type=float)
    feed_parser.add_argument("--max-price", type=float)
    feed_parser.add_argument("--location")
    feed_parser.add_argument("--limit", type=int)
    feed_parser.add_argument("--offset", type=int, default=0)
    feed_parser.add_argument("--rotate", action="store_true", help="Rotate featured slots fairly")
    feed_parser.add_argument("--output", help="Report path (default from config)")

    promote_parser = sub.add_parser("promote", help="Buy promotions for a listing")
    promote_parser.add_argument("listing_id")
    promote_parser.add_argument("types", nargs="+", help="featured, top_spot, boost, urgent")
    promote_parser.add_argument("--payment-id")

    maintain_parser = sub.add_parser("maintain", help="Scheduled promotion upkeep")
    maintain_parser.add_argument(
        "--action", default="all", choices=["expire", "boost", "rotation", "all"]
    )

    share_parser = sub.add_parser("fair-share", help="Show rotation fair share for a listing")
    share_parser.add_argument("listing_id")

    post_parser = sub.add_parser("post", help="Validate a posting draft and list the vehicle")
    post_parser.add_argument("draft", help="Draft JSON file")
    post_parser.add_argument("--owner", default="local", help="Draft owner key")

    export_parser = sub.add_parser("export", help="Export stored listings as JSON")
    export_parser.add_argument("--output", default="reports/listings.json")

    dash_parser = sub.add_parser("dashboard", help="Launch Streamlit dashboard")
    dash_parser.add_argument("--port", type=int, default=8501, help="Server port")

    args = parser.parse_args(argv)

    load_dotenv()
    _setup_logging(args.verbose)

    try:
        if args.cmd == "import":
            import_listings(args.config, args.path)
        elif args.cmd == "feed":
            filters = {
                "vehicle_type": args.vehicle_type,
                "make": args.make,
                "model": args.model,
                "min_price": args.min_price,
                "max_price": args.max_price,
                "location": args.location,
            }
            feed(args.config, filters, args.limit, args.offset, args.rotate, args.output)
        elif args.cmd == "promote":
            promote(args.config, args.listing_id, args.types, args.payment_id)
        elif args.cmd == "maintain":
            maintain(args.config, args.action)
        elif args.cmd == "fair-share":
            show_fair_share(args.config, args.listing_id)
        elif args.cmd == "post":
            if post(args.config, args.draft, args.owner) is None:
                sys.exit(1)
        elif args.cmd == "export":
            export(args.config, args.output)
        elif args.cmd == "dashboard":
            dashboard(port=args.port)
        else:
            parser.print_help()
            sys.exit(1)
    except ValueError as e:
        log.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
