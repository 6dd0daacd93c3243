import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from chat_export.browser import BrowserPool
from chat_export.dispatcher import ingest
from chat_export.errors import ChatExportError
from chat_export.pdf import pdf_filename, render_pdf
from chat_export.settings import Settings

logger = logging.getLogger("chat_export")


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Export a shared chat transcript to JSON (and optionally PDF)")
    p.add_argument("--url", required=True, help="Share link, e.g. https://chatgpt.com/share/<id>")
    p.add_argument("--out-json", type=str, default="conversation.json", help="Output JSON path")
    p.add_argument("--pdf-dir", type=str, default=None,
                   help="If set, also renders a PDF into this folder")
    p.add_argument("--debug", action="store_true", help="Attach diagnostics when parsing fails")
    p.add_argument("--force-render", action="store_true",
                   help="Skip the static fetch and render the page in Chromium")
    p.add_argument("--headed", action="store_true", help="Show the browser window (debugging)")
    return p.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    settings = Settings.from_env()
    # Environment (and .env) first; command-line flags override it below.
    if args.force_render:
        settings.force_render = True
    if args.headed:
        settings.headless = False
    setup_logging(settings.log_level)

    pool = BrowserPool(concurrency=settings.concurrency, headless=settings.headless)
    # Nothing is launched yet: Chromium starts on the first render or when warmed.
    pool.install_signal_handlers()
    # Ctrl+C / SIGTERM close the browser instead of leaving it orphaned.

    try:
        if settings.warm_browser:
            await pool.ensure_ready()
            # Always-warm mode: pay the launch cost before the first request.

        status, body = await ingest(args.url, pool, settings, debug=args.debug)
        # Failures come back as an error body, not an exception.

        Path(args.out_json).parent.mkdir(parents=True, exist_ok=True)
        # Make sure the output directory exists.
        with open(args.out_json, "w", encoding="utf-8") as f:
            json.dump(body, f, ensure_ascii=False, indent=2)
            # ensure_ascii=False keeps non-Latin transcripts readable.

        if status != 200:
            logger.error("[FAIL] %s (%d) -> %s", body.get("error"), status, args.out_json)
            return 1
        logger.info("[OK] %d turns -> %s", len(body.get("turns", [])), args.out_json)

        if args.pdf_dir and "turns" in body:
            # Printed through the same pool, so the browser is reused.
            out = Path(args.pdf_dir) / pdf_filename(body["title"])
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_bytes(await render_pdf(body["title"], body["turns"], pool))
            logger.info("[OK] PDF -> %s", out)
        return 0

    except ChatExportError as exc:
        logger.error("[FAIL] %s: %s", exc.code, exc.message)
        return 1

    finally:
        # Ensure Chromium is always closed, even if an exception occurred above.
        await pool.shutdown()


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
