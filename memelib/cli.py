"""
memelib CLI — command layer over the meme library

Commands:
    memelib init                                   — create database + file store
    memelib add FILE --summary S [--tag ns:v ...]  — store a file as a new meme
    memelib search [EXPR] [--mode M] [--page N]    — one page of matching memes
    memelib show ID                                — display one meme and its tags
    memelib edit ID [--summary S] [--tag ns:v ...] — update fields / replace tags
    memelib tag ID ns:value                        — attach a tag
    memelib untag ID ns:value [--keep-orphan]      — detach a tag
    memelib fav ID [--off]                         — mark / unmark favorite
    memelib trash ID [--restore]                   — soft-delete / restore
    memelib tags {namespaces,values,fuzzy} ...     — tag completion lookups
    memelib sweep                                  — delete tags no meme carries
    memelib stats                                  — library metrics

Environment variables:
    MEMELIB_DB      Path to SQLite database (default: .memes/memes.db)
    MEMELIB_FILES   Blob directory (default: .memes/files)
    MEMELIB_CONFIG  Optional JSON config file

Precedence (invariant):
    CLI --flag  >  MEMELIB_* env var  >  config file  >  compiled default

Exit codes:
    0  Success (including idempotent no-op)
    1  Operational error (bad args, unknown id, malformed search expression)
    2  Internal failure (unexpected exception, I/O error)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from memelib.config import MemeLibConfig, load_config
from memelib.errors import QuerySyntaxError
from memelib.types import Meme, SearchMode, Tag

logger = logging.getLogger(__name__)


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    """Parse string env var with fallback."""
    return os.environ.get(name) or default


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


def _resolve_config(args: argparse.Namespace) -> MemeLibConfig:
    """Resolve config file: CLI --config > MEMELIB_CONFIG > compiled defaults."""
    path = getattr(args, "config", None) or _env_str("MEMELIB_CONFIG", None)
    return load_config(path)


def _resolve_db(args: argparse.Namespace, cfg: MemeLibConfig) -> str:
    """Resolve database path: CLI --db > MEMELIB_DB > config > default."""
    if getattr(args, "db", None):
        return args.db
    return _env_str("MEMELIB_DB", cfg.store.db_path)


def _resolve_files(args: argparse.Namespace, cfg: MemeLibConfig) -> str:
    """Resolve blob directory: CLI --files > MEMELIB_FILES > config > default."""
    if getattr(args, "files", None):
        return args.files
    return _env_str("MEMELIB_FILES", cfg.store.files_dir)


def _open_library(args: argparse.Namespace):
    """Open the MemeLibrary. Creates the DB, file store and parent dirs if needed."""
    from memelib.store import MemeLibrary
    cfg = _resolve_config(args)
    return MemeLibrary(
        db_path=_resolve_db(args, cfg),
        files_dir=_resolve_files(args, cfg),
        wal_mode=cfg.store.wal_mode,
    )


# ---------------------------------------------------------------------------
# Stderr helpers (respect --quiet)
# ---------------------------------------------------------------------------

_quiet = False


def _info(msg: str) -> None:
    """Progress message to stderr (suppressed by --quiet)."""
    if not _quiet:
        print(msg, file=sys.stderr)


def _warn(msg: str) -> None:
    """Warning to stderr (always shown)."""
    print(msg, file=sys.stderr)


def _json_out(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _parse_tags(values: Optional[List[str]]) -> List[Tag]:
    try:
        return [Tag.parse(v) for v in values or []]
    except ValueError as exc:
        _warn(str(exc))
        sys.exit(1)


def _require_meme(lib, meme_id: int) -> Meme:
    meme = lib.get_meme(meme_id)
    if meme is None:
        _warn(f"Meme not found: {meme_id}")
        lib.close()
        sys.exit(1)
    return meme


# ===========================================================================
# Commands
# ===========================================================================


def cmd_init(args: argparse.Namespace) -> None:
    """Create (or upgrade) the database and the file store."""
    lib = _open_library(args)
    stats = lib.stats()
    lib.close()
    if getattr(args, "json", False):
        _json_out({"status": "ok", **stats})
        return
    _info(f"Library ready: {stats['db_path']} (schema v{stats['table_version']})")
    print(f'export MEMELIB_DB="{stats["db_path"]}"')
    print(f'export MEMELIB_FILES="{stats["files_dir"]}"')


def cmd_add(args: argparse.Namespace) -> None:
    """Store a file and create its meme record."""
    tags = _parse_tags(args.tag)
    lib = _open_library(args)
    meme_id = lib.add_meme(
        args.file,
        summary=args.summary,
        desc=args.desc,
        tags=tags,
        delete_source=args.move,
        extra_data=args.extra,
    )
    meme = lib.get_meme(meme_id)
    lib.close()
    if getattr(args, "json", False):
        _json_out(meme.to_dict())
    else:
        print(f"{meme_id}\t{meme.content}")


def cmd_search(args: argparse.Namespace) -> None:
    """Search memes by expression, view mode and page."""
    lib = _open_library(args)
    mode = args.mode or _resolve_config(args).search.default_mode
    try:
        memes = lib.search(args.expr, mode=mode, page=args.page)
    finally:
        lib.close()

    if getattr(args, "json", False):
        _json_out([m.to_dict() for m in memes])
        return
    if not memes:
        _info("No results found.")
        return
    for m in memes:
        flags = ("*" if m.fav else " ") + ("T" if m.trash else " ")
        print(f"{m.id:>6} {flags} {m.summary}")


def cmd_show(args: argparse.Namespace) -> None:
    """Show one meme with its tags."""
    lib = _open_library(args)
    meme = _require_meme(lib, args.id)
    tags = lib.tags_of_meme(args.id)
    path = lib.blob_path(meme.content)
    lib.close()

    if getattr(args, "json", False):
        _json_out({**meme.to_dict(), "tags": [t.to_dict() for t in tags], "path": str(path)})
        return
    print(f"ID:        {meme.id}")
    print(f"Summary:   {meme.summary}")
    print(f"Content:   {meme.content}")
    print(f"Path:      {path}")
    print(f"Favorite:  {meme.fav}")
    print(f"Trash:     {meme.trash}")
    print(f"Tags:      {', '.join(str(t) for t in tags) if tags else '(none)'}")
    print(f"Created:   {meme.create_time}")
    print(f"Updated:   {meme.update_time}")
    if meme.thumbnail:
        print(f"Thumbnail: {meme.thumbnail}")
    if meme.extra_data:
        print(f"Extra:     {meme.extra_data}")
    if meme.desc:
        print(f"\n--- Description ---\n{meme.desc}")


def cmd_edit(args: argparse.Namespace) -> None:
    """Sparse update; --tag replaces the whole tag set."""
    tags = _parse_tags(args.tag) if args.tag is not None else None
    lib = _open_library(args)
    ok = lib.edit_meme(args.id, summary=args.summary, desc=args.desc, tags=tags)
    lib.close()
    if not ok:
        _warn(f"Meme not found: {args.id}")
        sys.exit(1)
    _info(f"Updated meme {args.id}")


def cmd_tag(args: argparse.Namespace) -> None:
    """Attach a tag to a meme."""
    tag = _parse_tags([args.tag])[0]
    lib = _open_library(args)
    _require_meme(lib, args.id)
    tag_id = lib.get_or_create_tag(tag.namespace, tag.value)
    lib.link_tag(tag_id, args.id)
    lib.close()
    _info(f"Tagged meme {args.id} with {tag}")


def cmd_untag(args: argparse.Namespace) -> None:
    """Detach a tag from a meme, reclaiming it if orphaned unless --keep-orphan."""
    tag = _parse_tags([args.tag])[0]
    lib = _open_library(args)
    tag_id = lib.tag_id(tag.namespace, tag.value)
    if tag_id is None:
        lib.close()
        _info(f"No such tag: {tag}")
        return
    reclaimed = lib.unlink_tag(tag_id, args.id, reclaim_orphan=not args.keep_orphan)
    lib.close()
    _info(f"Removed {tag} from meme {args.id}" + (" (tag deleted)" if reclaimed else ""))


def cmd_fav(args: argparse.Namespace) -> None:
    lib = _open_library(args)
    ok = lib.set_favorite(args.id, not args.off)
    lib.close()
    if not ok:
        _warn(f"Meme not found: {args.id}")
        sys.exit(1)


def cmd_trash(args: argparse.Namespace) -> None:
    lib = _open_library(args)
    ok = lib.set_trash(args.id, not args.restore)
    lib.close()
    if not ok:
        _warn(f"Meme not found: {args.id}")
        sys.exit(1)


def cmd_tags(args: argparse.Namespace) -> None:
    """Tag completion lookups."""
    lib = _open_library(args)
    if args.lookup == "namespaces":
        result = lib.namespaces_with_prefix(args.prefix)
    elif args.lookup == "values":
        result = lib.values_with_prefix(args.namespace, args.prefix)
    else:
        result = [str(t) for t in lib.values_fuzzy(args.keyword)]
    lib.close()

    if getattr(args, "json", False):
        _json_out(result)
    else:
        for line in result:
            print(line)


def cmd_sweep(args: argparse.Namespace) -> None:
    """Delete every orphan tag."""
    lib = _open_library(args)
    removed = lib.sweep_orphan_tags()
    lib.close()
    if getattr(args, "json", False):
        _json_out({"removed": removed})
    else:
        _info(f"Removed {removed} orphan tag(s)")


def cmd_stats(args: argparse.Namespace) -> None:
    """Show library statistics."""
    lib = _open_library(args)
    stats = lib.stats()
    lib.close()

    if getattr(args, "json", False):
        stats["status"] = "ok"
        _json_out(stats)
        return
    print("Meme Library Statistics")
    print("=" * 40)
    print(f"  Database:   {stats['db_path']}")
    print(f"  Files:      {stats['files_dir']}")
    print(f"  Schema:     v{stats['table_version']} (SQLite {stats['sqlite_version']})")
    print(f"  Memes:      {stats['meme_count']}")
    print(f"  Favorites:  {stats['favorite_count']}")
    print(f"  Trash:      {stats['trash_count']}")
    print(f"  Tags:       {stats['tag_count']} in {stats['namespace_count']} namespace(s)")


# ===========================================================================
# Entry point
# ===========================================================================


def _build_parser() -> argparse.ArgumentParser:
    # SUPPRESS defaults keep subparser defaults from overriding values
    # parsed at the main-parser level (argparse parents quirk).
    _common = argparse.ArgumentParser(add_help=False)
    _common.add_argument(
        "--db", default=argparse.SUPPRESS,
        help="Path to SQLite database (default: MEMELIB_DB or .memes/memes.db)",
    )
    _common.add_argument(
        "--files", default=argparse.SUPPRESS,
        help="Blob directory (default: MEMELIB_FILES or .memes/files)",
    )
    _common.add_argument(
        "--config", default=argparse.SUPPRESS,
        help="JSON config file (default: MEMELIB_CONFIG)",
    )
    _common.add_argument(
        "--quiet", "-q", action="store_true", default=argparse.SUPPRESS,
        help="Suppress stderr progress messages",
    )
    _common.add_argument(
        "--json", action="store_true", default=argparse.SUPPRESS,
        help="Machine-readable JSON output",
    )
    _common.add_argument(
        "-v", "--verbose", action="store_true", default=argparse.SUPPRESS,
        help="Enable verbose logging",
    )

    parser = argparse.ArgumentParser(
        prog="memelib",
        description="memelib — personal meme library",
        parents=[_common],
    )
    sub = parser.add_subparsers(dest="command", help="Available commands")

    p = sub.add_parser("init", parents=[_common], help="Create or upgrade the library")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("add", parents=[_common], help="Add a file as a new meme")
    p.add_argument("file", help="Image file to store")
    p.add_argument("--summary", required=True, help="Short summary (searchable)")
    p.add_argument("--desc", default=None, help="Longer description (searchable)")
    p.add_argument("--tag", action="append", default=None, help="Tag as namespace:value (repeatable)")
    p.add_argument("--extra", default=None, help="Opaque extra data string")
    p.add_argument("--move", action="store_true", help="Delete the source file after adding")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("search", parents=[_common], help="Search memes")
    p.add_argument("expr", nargs="?", default="", help="Search expression (default: everything)")
    p.add_argument(
        "--mode", default=None, choices=[m.value for m in SearchMode],
        help="View mode (default: config search.default_mode or Normal)",
    )
    p.add_argument("--page", type=int, default=0, help="Zero-based page (30 per page)")
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("show", parents=[_common], help="Show one meme")
    p.add_argument("id", type=int, help="Meme id")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("edit", parents=[_common], help="Edit a meme")
    p.add_argument("id", type=int, help="Meme id")
    p.add_argument("--summary", default=None)
    p.add_argument("--desc", default=None)
    p.add_argument("--tag", action="append", default=None, help="Replacement tag set (repeatable)")
    p.set_defaults(func=cmd_edit)

    p = sub.add_parser("tag", parents=[_common], help="Attach a tag")
    p.add_argument("id", type=int, help="Meme id")
    p.add_argument("tag", help="namespace:value")
    p.set_defaults(func=cmd_tag)

    p = sub.add_parser("untag", parents=[_common], help="Detach a tag")
    p.add_argument("id", type=int, help="Meme id")
    p.add_argument("tag", help="namespace:value")
    p.add_argument("--keep-orphan", action="store_true", help="Keep the tag even if unused")
    p.set_defaults(func=cmd_untag)

    p = sub.add_parser("fav", parents=[_common], help="Mark as favorite")
    p.add_argument("id", type=int, help="Meme id")
    p.add_argument("--off", action="store_true", help="Unmark instead")
    p.set_defaults(func=cmd_fav)

    p = sub.add_parser("trash", parents=[_common], help="Move to trash")
    p.add_argument("id", type=int, help="Meme id")
    p.add_argument("--restore", action="store_true", help="Restore from trash instead")
    p.set_defaults(func=cmd_trash)

    p = sub.add_parser("tags", parents=[_common], help="Tag lookups")
    lookups = p.add_subparsers(dest="lookup", required=True)
    lp = lookups.add_parser("namespaces", parents=[_common], help="Namespaces by prefix")
    lp.add_argument("prefix", nargs="?", default="")
    lp = lookups.add_parser("values", parents=[_common], help="Values in a namespace by prefix")
    lp.add_argument("namespace")
    lp.add_argument("prefix", nargs="?", default="")
    lp = lookups.add_parser("fuzzy", parents=[_common], help="Tags whose value starts with KEYWORD")
    lp.add_argument("keyword")
    p.set_defaults(func=cmd_tags)

    p = sub.add_parser("sweep", parents=[_common], help="Delete orphan tags")
    p.set_defaults(func=cmd_sweep)

    p = sub.add_parser("stats", parents=[_common], help="Library statistics")
    p.set_defaults(func=cmd_stats)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point: memelib <command> [args]."""
    global _quiet

    parser = _build_parser()
    args = parser.parse_args(argv)

    _quiet = getattr(args, "quiet", False)

    if getattr(args, "verbose", False):
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(name)s %(levelname)s %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except BrokenPipeError:
        # Handle broken pipe gracefully (e.g. memelib search | head)
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(0)
    except KeyboardInterrupt:
        sys.exit(0)
    except (QuerySyntaxError, ValueError) as e:
        _warn(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        _warn(f"Internal error: {e}")
        if getattr(args, "verbose", False):
            import traceback
            traceback.print_exc(file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
