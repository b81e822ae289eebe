"""qserve CLI entrypoint."""

import argparse
import json
import sys
from typing import Any, NoReturn

from qserve import __version__
from qserve.core.config import load_config
from qserve.core.errors import QServeError
from qserve.utils import setup_logging


def print_output(data: Any, as_json: bool) -> None:
    """Print output as JSON or human-readable format."""
    if as_json:
        json.dump(data, sys.stdout, indent=2, default=str)
        print()
    else:
        if isinstance(data, dict):
            for key, value in data.items():
                print(f"{key}: {value}")
        elif isinstance(data, list):
            for item in data:
                print(item)
        else:
            print(data)


def parse_assignments(items: list[str] | None) -> dict[str, str]:
    """Parse repeated ``key=value`` arguments into a dict."""
    result: dict[str, str] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected key=value, got {item!r}")
        result[key.strip()] = value
    return result


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the search server."""
    from qserve.serve.runner import run_server

    config = load_config()
    host = args.host or config.server.host
    port = args.port or config.server.port
    index_path = args.index or config.index.path

    print(f"Starting qserve on {host}:{port}")
    print(f"  Index: {index_path}")

    run_server(host=host, port=port, index_path=index_path, config=config)


def cmd_search(args: argparse.Namespace) -> None:
    """Run one search against the index without starting a server."""
    from qserve.core.properties import PropertyStore
    from qserve.core.storage.index import load_index
    from qserve.serve.context import RequestContext
    from qserve.serve.executor import QueryExecutor
    from qserve.serve.translate import build_search_response

    config = load_config()
    controls: dict[str, Any] = parse_assignments(args.control)
    controls["start"] = args.start
    if args.end is not None:
        controls["end"] = args.end

    context = RequestContext.from_payload(
        {
            "query": args.query,
            "matchingModelName": args.matching,
            "weightingModelName": args.weighting,
            "controls": controls,
            "properties": parse_assignments(args.property),
        },
        defaults=config.search,
    )

    index = load_index(args.index or config.index.path)
    try:
        executor = QueryExecutor(index, PropertyStore(config.properties))
        result_set = executor.execute(context)
        response = build_search_response(result_set, index)
    finally:
        index.close()

    if args.json:
        print_output(response.model_dump(by_alias=True), as_json=True)
    else:
        print(f"Found {result_set.exact_result_size} documents, showing {len(response.results)}:")
        for rank, hit in enumerate(response.results, start=context.controls.start + 1):
            print(f"  {rank:>4}. {hit.doc_id}  {hit.score:.4f}")


def cmd_stats(args: argparse.Namespace) -> None:
    """Show collection statistics of the index."""
    from qserve.core.storage.index import load_index
    from qserve.serve.schema import StatsResponse

    config = load_config()
    index = load_index(args.index or config.index.path)
    try:
        result = StatsResponse.from_statistics(index.collection_statistics()).model_dump(
            by_alias=True
        )
    finally:
        index.close()

    if args.json:
        print_output(result, as_json=True)
    else:
        print("Index Statistics:")
        print(f"  Documents: {result['documents']}")
        print(f"  Tokens: {result['tokens']}")
        print(f"  Pointers: {result['pointers']}")
        print(f"  Unique terms: {result['unique_terms']}")
        print(f"  Average length: {result['average_length']:.2f}")
        print(f"  Fields: {result['fields']}")


def cmd_version(args: argparse.Namespace) -> None:
    """Print the qserve version."""
    print(__version__)


def main() -> NoReturn:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="qserve",
        description="qserve - HTTP search service over a pre-built inverted index",
    )
    parser.add_argument("--index", help="Path to the index file (default: from config)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    version_parser = subparsers.add_parser("version", help="Print the qserve version")
    version_parser.set_defaults(func=cmd_version)

    serve_parser = subparsers.add_parser("serve", help="Start the search server")
    serve_parser.add_argument("host", nargs="?", help="Host to bind to (default: from config)")
    serve_parser.add_argument(
        "port", nargs="?", type=int, help="Port to bind to (default: from config)"
    )
    serve_parser.set_defaults(func=cmd_serve)

    search_parser = subparsers.add_parser("search", help="Run one search from the command line")
    search_parser.add_argument("query", help="Query string")
    search_parser.add_argument("--start", type=int, default=0, help="First rank to return")
    search_parser.add_argument("--end", type=int, default=None, help="Rank to stop before")
    search_parser.add_argument("--matching", default=None, help="Matching model name")
    search_parser.add_argument("--weighting", default=None, help="Weighting model name")
    search_parser.add_argument(
        "-C",
        "--control",
        action="append",
        metavar="KEY=VALUE",
        help="Run control (repeatable)",
    )
    search_parser.add_argument(
        "-P",
        "--property",
        action="append",
        metavar="KEY=VALUE",
        help="Property override for this run (repeatable)",
    )
    search_parser.add_argument("--json", action="store_true", help="Output as JSON")
    search_parser.set_defaults(func=cmd_search)

    stats_parser = subparsers.add_parser("stats", help="Show index statistics")
    stats_parser.add_argument("--json", action="store_true", help="Output as JSON")
    stats_parser.set_defaults(func=cmd_stats)

    args = parser.parse_args()

    config = load_config()
    setup_logging(config.logging.level, json_format=config.logging.format == "json")

    try:
        args.func(args)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except QServeError as e:
        print(json.dumps(e.to_payload()), file=sys.stderr)
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
