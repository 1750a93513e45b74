"""Command-line interface for kbforge.

Exit codes: 0 success, 1 error diagnostics present, 2 operational failure
(config, index I/O).
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from . import __version__
from .config.settings import KBConfig, load_config
from .errors import ConfigError, IndexIOError
from .indexer.document import TemplateKind
from .indexer.search_index import read_index
from .observability.logging import setup_logging
from .pipelines.build import Snapshot, format_report, run_build, run_validate
from .pipelines.query import QueryFilters, query

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_DIAGNOSTIC_ERRORS = 1
EXIT_OPERATIONAL = 2


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to kbforge.yaml")
    common.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    common.add_argument("--log-json", action="store_true", help="Emit logs as JSON")
    common.add_argument("--log-file", help="Also write JSON logs to this file")
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog="kbforge",
        description="Validate a markdown knowledge base and build its search index",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", parents=[common], help="Validate the corpus and write index.json")
    build.add_argument("--root", help="Corpus root (default: current directory)")
    build.add_argument("--incremental", action="store_true", help="Re-parse only files whose checksum changed")
    build.add_argument("--output", help="Index file (default: <root>/index.json)")
    build.add_argument("--format", choices=["text", "json"], default="text", help="Output format")

    validate = sub.add_parser("validate", parents=[common], help="Check links and templates; write nothing")
    validate.add_argument("--root", help="Corpus root (default: current directory)")
    validate.add_argument("--format", choices=["text", "json"], default="text", help="Output format")

    q = sub.add_parser("query", parents=[common], help="Search a built index")
    q.add_argument("text", nargs="+", help="Query text")
    q.add_argument("--root", help="Corpus root used to locate index.json")
    q.add_argument("--index", help="Index file (default: <root>/index.json)")
    q.add_argument("--category", help="Only documents in this category")
    q.add_argument("--tag", help="Only documents with this tag")
    q.add_argument("--template", choices=[k.value for k in TemplateKind], help="Only this template kind")
    q.add_argument("--limit", type=int, help="Maximum results (default from config: 20)")
    q.add_argument("--format", choices=["text", "json"], default="text", help="Output format")

    serve = sub.add_parser("serve", parents=[common], help="Serve queries over HTTP")
    serve.add_argument("--root", help="Corpus root used to locate index.json")
    serve.add_argument("--index", help="Index file (default: <root>/index.json)")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8001)

    return parser


def _load(args) -> KBConfig:
    overrides = {}
    if getattr(args, "output", None):
        overrides["index_path"] = args.output
    if getattr(args, "index", None):
        overrides["index_path"] = args.index
    return load_config(args.config, root=getattr(args, "root", None), overrides=overrides)


def _print_snapshot(snapshot: Snapshot, fmt: str, extra: Optional[dict] = None) -> None:
    if fmt == "json":
        payload = {
            "documents": len(snapshot.documents),
            "errors": snapshot.error_count,
            "warnings": snapshot.warning_count,
            "diagnostics": [d.to_dict() for d in snapshot.diagnostics],
        }
        payload.update(extra or {})
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print(format_report(snapshot.diagnostics))


def cmd_build(args) -> int:
    config = _load(args)
    snapshot = run_build(config, incremental=args.incremental)
    _print_snapshot(snapshot, args.format, {
        "index": str(config.resolved_index_path),
        "reused": snapshot.reused,
    })
    if args.format == "text":
        print(f"\nIndexed {len(snapshot.documents)} documents into {config.resolved_index_path}")
    return snapshot.exit_code


def cmd_validate(args) -> int:
    config = _load(args)
    snapshot = run_validate(config)
    _print_snapshot(snapshot, args.format)
    return snapshot.exit_code


def cmd_query(args) -> int:
    config = _load(args)
    index = read_index(config.resolved_index_path)
    filters = QueryFilters(category=args.category, tag=args.tag, template_kind=args.template)
    results = query(
        index,
        " ".join(args.text),
        filters,
        limit=args.limit or config.default_limit,
        title_phrase_multiplier=config.title_phrase_multiplier,
    )
    if args.format == "json":
        print(json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False))
        return EXIT_OK
    if not results:
        print("No results.")
    for rank, result in enumerate(results, 1):
        print(f"{rank:>2}. {result.title}  [{result.category}]  {result.path}  (score {result.score:g})")
        if result.snippet:
            print(f"    {result.snippet}")
    return EXIT_OK


def cmd_serve(args) -> int:
    import uvicorn
    from .server.api import create_app

    config = _load(args)
    app = create_app(config)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return EXIT_OK


COMMANDS = {
    "build": cmd_build,
    "validate": cmd_validate,
    "query": cmd_query,
    "serve": cmd_serve,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, log_file=args.log_file, use_json=args.log_json)
    try:
        return COMMANDS[args.command](args)
    except (ConfigError, IndexIOError) as e:
        logger.error(str(e))
        print(f"error: {e}", file=sys.stderr)
        return EXIT_OPERATIONAL
    except NotADirectoryError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_OPERATIONAL


if __name__ == "__main__":
    raise SystemExit(main())
