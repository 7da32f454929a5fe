from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Sequence

from .blocks import extract_feed_markup
from .config import config_sha256, load_config
from .config_schema import AppConfig
from .event_log import FeedEventLog
from .errors import (
    ConfigError,
    EmptyParseError,
    GenerationError,
    PageIndexError,
    StorageError,
)
from .feed import FeedService
from .pages import PageSet
from .parser import DocumentParser
from .platforms import DIALECTS
from .post import dump_page
from .serializer import serialize_page
from .storage import SQLiteFeedStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sns_feed")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def _input_args(p: argparse.ArgumentParser, *, config_required: bool) -> None:
        p.add_argument(
            "--config",
            required=config_required,
            help="Path to YAML config file.",
        )
        p.add_argument(
            "--input",
            required=True,
            help="File with feed markup ('-' reads stdin).",
        )
        p.add_argument(
            "--platform",
            choices=sorted(DIALECTS),
            default=None,
            help="Platform dialect (defaults to the configured platform).",
        )

    parse = subparsers.add_parser("parse", help="Parse feed markup and print the posts as JSON.")
    _input_args(parse, config_required=False)
    parse.set_defaults(_handler=_cmd_parse)

    fmt = subparsers.add_parser("format", help="Parse feed markup and print it re-serialized.")
    _input_args(fmt, config_required=False)
    fmt.set_defaults(_handler=_cmd_format)

    feed = subparsers.add_parser("feed", help="Inspect or change the stored pages of a message.")
    feed_sub = feed.add_subparsers(dest="feed_command", required=True)

    for name, handler, help_text in (
        ("add", _cmd_feed_add, "Append a page parsed from a file of generator output."),
        ("replace", _cmd_feed_replace, "Replace the current page with one parsed from a file."),
        ("save-edit", _cmd_feed_save_edit, "Save edited markup over the current page."),
    ):
        p = feed_sub.add_parser(name, help=help_text)
        _input_args(p, config_required=True)
        p.add_argument("--message-id", required=True)
        p.set_defaults(_handler=handler)

    for name, handler, help_text in (
        ("show", _cmd_feed_show, "Print the stored page set as JSON."),
        ("edit-text", _cmd_feed_edit_text, "Print the editable markup of the current page."),
        ("delete", _cmd_feed_delete, "Delete the current page."),
        ("next", _cmd_feed_next, "Move to the next page."),
        ("prev", _cmd_feed_prev, "Move to the previous page."),
    ):
        p = feed_sub.add_parser(name, help=help_text)
        p.add_argument("--config", required=True, help="Path to YAML config file.")
        p.add_argument("--message-id", required=True)
        p.set_defaults(_handler=handler)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False, sort_keys=True))


def _read_input(value: str) -> str:
    if value == "-":
        return sys.stdin.read()
    try:
        return Path(value).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read input file: {value}: {e}") from e


def _config_from_args(args: argparse.Namespace) -> AppConfig:
    path = getattr(args, "config", None)
    if path:
        return load_config(path)
    return AppConfig()


def _open_event_log(cfg: AppConfig, command: str) -> FeedEventLog | None:
    if not cfg.logging.path:
        return None
    log = FeedEventLog(cfg.logging.path)
    log.session_started(command=command, config_hash=config_sha256(cfg))
    return log


def _cmd_parse(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    posts = DocumentParser(cfg.parser).parse(_read_input(args.input), platform=args.platform)
    _print_json(dump_page(posts))
    return 0


def _cmd_format(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    posts = DocumentParser(cfg.parser).parse(_read_input(args.input), platform=args.platform)
    print(serialize_page(posts, args.platform))
    return 0


def _run_feed(args: argparse.Namespace, action: Callable[[FeedService, str], int]) -> int:
    cfg = _config_from_args(args)
    logger = _open_event_log(cfg, f"feed {args.feed_command}")
    try:
        with SQLiteFeedStore.open(cfg.storage.path) as store:
            service = FeedService(store, DocumentParser(cfg.parser, logger=logger), logger=logger)
            return int(action(service, str(args.message_id)))
    except Exception as e:
        if logger is not None:
            logger.failure("feed_command_failed", exc=e, message_id=str(args.message_id))
        raise
    finally:
        if logger is not None:
            logger.close()


def _print_summary(page_set: PageSet) -> None:
    total = len(page_set)
    current = page_set.page_index + 1 if total else 0
    print(f"pages={total}")
    print(f"page={current}")
    print(f"posts={len(page_set.current_page)}")
    print(f"platform={page_set.platform or ''}")


def _store_from_file(args: argparse.Namespace, *, mode: str) -> int:
    text = _read_input(args.input)

    def _action(service: FeedService, message_id: str) -> int:
        posts = service.parser.parse(text, platform=args.platform)
        if not posts:
            raise EmptyParseError("No posts parsed; expected [POST]...[/POST] blocks")
        page_set = service.store_page(
            message_id,
            posts,
            extract_feed_markup(text),
            mode=mode,
            platform=posts[0].platform,
        )
        _print_summary(page_set)
        return 0

    return _run_feed(args, _action)


def _cmd_feed_add(args: argparse.Namespace) -> int:
    return _store_from_file(args, mode="append")


def _cmd_feed_replace(args: argparse.Namespace) -> int:
    return _store_from_file(args, mode="replace")


def _cmd_feed_save_edit(args: argparse.Namespace) -> int:
    text = _read_input(args.input)

    def _action(service: FeedService, message_id: str) -> int:
        _print_summary(service.save_edit(message_id, text))
        return 0

    return _run_feed(args, _action)


def _cmd_feed_show(args: argparse.Namespace) -> int:
    def _action(service: FeedService, message_id: str) -> int:
        _print_json(service.load(message_id).to_stored())
        return 0

    return _run_feed(args, _action)


def _cmd_feed_edit_text(args: argparse.Namespace) -> int:
    def _action(service: FeedService, message_id: str) -> int:
        print(service.edit_text(message_id))
        return 0

    return _run_feed(args, _action)


def _cmd_feed_delete(args: argparse.Namespace) -> int:
    def _action(service: FeedService, message_id: str) -> int:
        _print_summary(service.delete_page(message_id))
        return 0

    return _run_feed(args, _action)


def _cmd_feed_next(args: argparse.Namespace) -> int:
    def _action(service: FeedService, message_id: str) -> int:
        _print_summary(service.next_page(message_id))
        return 0

    return _run_feed(args, _action)


def _cmd_feed_prev(args: argparse.Namespace) -> int:
    def _action(service: FeedService, message_id: str) -> int:
        _print_summary(service.prev_page(message_id))
        return 0

    return _run_feed(args, _action)


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (StorageError, EmptyParseError, GenerationError, PageIndexError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
