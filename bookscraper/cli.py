"""Command-line interface for scraping and merging books."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from typing import Awaitable, List, Optional, Tuple, TypeVar

from .config import MODES, ScrapeOptions, load_config, options_from_env
from .merge import DEFAULT_BOOK_NAME, MergeError, merge_book
from .scrape import ScrapeSetupError
from .storage import BookStorage

# Exit codes
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2
EXIT_INTERRUPTED = 130

T = TypeVar("T")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def format_duration(seconds: float) -> str:
    """Human-readable duration, e.g. ``"1m 5s"`` or ``"42s"``."""
    total = int(seconds)
    minutes, remaining = divmod(total, 60)
    if minutes > 0:
        return f"{minutes}m {remaining}s"
    return f"{total}s"


async def _cancel_on_sigterm(coro: Awaitable[T]) -> T:
    """Await *coro*, turning SIGTERM into task cancellation."""
    task = asyncio.ensure_future(coro)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
    except (NotImplementedError, RuntimeError):
        # Not supported on this platform / loop.
        pass
    try:
        return await task
    finally:
        try:
            loop.remove_signal_handler(signal.SIGTERM)
        except (NotImplementedError, RuntimeError):
            pass


# =============================================================================
# SCRAPE COMMAND
# =============================================================================


def _add_scrape_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "start_url",
        help="Table-of-contents page or first chapter of the book",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Output directory (default: output)",
    )
    parser.add_argument(
        "--wait",
        type=float,
        default=None,
        help="Seconds to wait for JS rendering after each page load (default: 1)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Base delay in seconds between chapters (default: 1)",
    )
    parser.add_argument(
        "--jitter",
        type=float,
        default=None,
        help="Maximum random extra delay in seconds (default: 0.5)",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        default=None,
        help="Start pages with more links than this are tables of contents (default: 20)",
    )
    parser.add_argument(
        "--mode",
        type=str,
        choices=list(MODES),
        default=None,
        help="Traversal mode: auto-detect, table of contents or next links (default: auto)",
    )
    parser.add_argument(
        "--skip",
        action="append",
        default=None,
        metavar="URL",
        help="Skip links containing this text (can be used multiple times)",
    )
    parser.add_argument(
        "--url-pattern",
        type=str,
        default=None,
        help="Only include links matching this glob (* within a segment, ** across)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Page navigation timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _parse_scrape_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="bookscrape",
        description="Scrape the chapters of a Tilda book into Markdown files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Scrape from a table of contents into ./output
  bookscrape https://example.com/book

  # Slower, politer scraping into a custom directory
  bookscrape https://example.com/book -o my-book --wait 2 --delay 3

  # Skip a page and keep only chapter URLs
  bookscrape https://example.com/book --skip /about --url-pattern "https://example.com/chapter-*"

  # Follow "next" links from the first chapter
  bookscrape https://example.com/chapter-1 --mode nav
""",
    )
    _add_scrape_arguments(parser)
    return parser.parse_args(argv)


def _options_from_args(args: argparse.Namespace) -> ScrapeOptions:
    return options_from_env(
        output_dir=args.output,
        page_wait=args.wait,
        chapter_delay=args.delay,
        delay_jitter=args.jitter,
        toc_threshold=args.threshold,
        mode=args.mode,
        navigation_timeout=args.timeout,
        skip_urls=args.skip,
        url_pattern=args.url_pattern,
        headless=False if args.headed else None,
    )


async def _run_scrape_async(
    start_url: str, options: ScrapeOptions
) -> Tuple[int, int]:
    """Run a scrape and return ``(exit code, chapter count)``."""
    from . import scrape_book_async

    try:
        result = await scrape_book_async(start_url, options)
    except ScrapeSetupError as exc:
        logging.error("Error: %s", exc)
        return EXIT_ERROR, 0

    if result.failures:
        logging.warning(
            "%d of %d chapters failed; partial output saved to %s",
            len(result.failures),
            len(result.failures) + len(result.chapters),
            options.output_dir,
        )
        return EXIT_PARTIAL, len(result.chapters)
    return EXIT_OK, len(result.chapters)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for bookscrape command."""
    args = _parse_scrape_args(argv)
    _setup_logging(args.verbose)
    load_config()

    try:
        options = _options_from_args(args)
    except ValueError as exc:
        logging.error("Error: %s", exc)
        return EXIT_ERROR

    try:
        code, _ = asyncio.run(
            _cancel_on_sigterm(_run_scrape_async(args.start_url, options))
        )
        return code
    except (KeyboardInterrupt, asyncio.CancelledError):
        logging.info("Interrupted")
        return EXIT_INTERRUPTED
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return EXIT_ERROR


# =============================================================================
# MERGE COMMAND
# =============================================================================


def _parse_merge_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="bookscrape-merge",
        description="Merge scraped chapters into a single book.md.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Merge ./output/chapters into ./output/book.md
  bookscrape-merge

  # Custom title and directory
  bookscrape-merge -o my-book --name "My Book"
""",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Directory produced by bookscrape (default: output)",
    )
    parser.add_argument(
        "--name",
        type=str,
        default=DEFAULT_BOOK_NAME,
        help=f'Book title (default: "{DEFAULT_BOOK_NAME}")',
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def _merge(output_dir: str, name: str) -> int:
    try:
        merge_book(BookStorage(output_dir), name=name)
    except MergeError as exc:
        logging.error("Error: %s", exc)
        return EXIT_ERROR
    return EXIT_OK


def merge_main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for bookscrape-merge command."""
    args = _parse_merge_args(argv)
    _setup_logging(args.verbose)
    load_config()

    try:
        output_dir = options_from_env(output_dir=args.output).output_dir
        return _merge(output_dir, args.name)
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return EXIT_INTERRUPTED
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return EXIT_ERROR


# =============================================================================
# PIPELINE COMMAND
# =============================================================================


def _parse_pipeline_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="bookscrape-all",
        description="Scrape a book and merge it into book.md in one go.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  bookscrape-all https://example.com/book --name "My Book"
  bookscrape-all https://example.com/book -o my-book --delay 2 --skip /about
""",
    )
    _add_scrape_arguments(parser)
    parser.add_argument(
        "--name",
        type=str,
        default=DEFAULT_BOOK_NAME,
        help=f'Book title (default: "{DEFAULT_BOOK_NAME}")',
    )
    return parser.parse_args(argv)


def _log_step(description: str) -> None:
    logging.info("=" * 50)
    logging.info("Step: %s", description)
    logging.info("=" * 50)


def pipeline_main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for bookscrape-all command."""
    args = _parse_pipeline_args(argv)
    _setup_logging(args.verbose)
    load_config()

    try:
        options = _options_from_args(args)
    except ValueError as exc:
        logging.error("Error: %s", exc)
        return EXIT_ERROR

    logging.info("Starting full pipeline...")
    logging.info("URL: %s", args.start_url)
    logging.info("Book name: %s", args.name)

    timings: List[Tuple[str, float]] = []
    pipeline_start = time.monotonic()

    _log_step("Scraping chapters")
    step_start = time.monotonic()
    try:
        scrape_code, chapter_count = asyncio.run(
            _cancel_on_sigterm(_run_scrape_async(args.start_url, options))
        )
    except (KeyboardInterrupt, asyncio.CancelledError):
        logging.info("Interrupted")
        return EXIT_INTERRUPTED
    except Exception as exc:
        logging.error("Pipeline failed: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return EXIT_ERROR
    if scrape_code == EXIT_ERROR or chapter_count == 0:
        logging.error("Pipeline failed: no chapters were scraped")
        return EXIT_ERROR
    timings.append(("Scraping chapters", time.monotonic() - step_start))

    _log_step("Merging chapters")
    step_start = time.monotonic()
    try:
        merge_code = _merge(options.output_dir, args.name)
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return EXIT_INTERRUPTED
    except OSError as exc:
        logging.error("Pipeline failed: %s", exc)
        return EXIT_ERROR
    if merge_code != EXIT_OK:
        return merge_code
    timings.append(("Merging chapters", time.monotonic() - step_start))

    logging.info("Pipeline complete!")
    logging.info("Timing Summary:")
    for step, duration in timings:
        logging.info("  %-20s %s", step, format_duration(duration))
    logging.info("  %-20s %s", "Total", format_duration(time.monotonic() - pipeline_start))

    return scrape_code


if __name__ == "__main__":
    sys.exit(main())
