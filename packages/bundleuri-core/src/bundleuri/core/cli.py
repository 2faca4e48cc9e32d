import argparse
import json
import logging
import sys

from bundleuri.core.exception import BundleURIError, RefUpdateError, SpecError
from bundleuri.core.fetch import fetch_bundle_uri
from bundleuri.core.manifest import bundle_list_as_dict, load_bundle_list, print_bundle_list
from bundleuri.core.repository import Repository
from bundleuri.core.runtime.settings import load_settings

# Exit status for an aborted translation (a ref moved underneath us).
EXIT_FATAL = 128


def _setup_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")


def main(argv=None) -> int:
    argv = argv or sys.argv[1:]
    parser = argparse.ArgumentParser(prog="bundleuri", description="bootstrap a repository from bundle URIs")
    sp = parser.add_subparsers(dest="cmd", required=True)

    initp = sp.add_parser("init", help="Create an empty repository")
    initp.add_argument("repo", help="Repository directory")

    fetchp = sp.add_parser("fetch", help="Fetch one bundle URI into a repository")
    fetchp.add_argument("uri", help="http(s)://, file:// or local path of the bundle")
    fetchp.add_argument("--repo", required=True, help="Repository directory")
    fetchp.add_argument("--json", action="store_true", help="Output machine-readable JSON")

    listp = sp.add_parser("list", help="Bundle list operations")
    lsp = listp.add_subparsers(dest="list_cmd", required=True)
    parsep = lsp.add_parser("parse", help="Parse a bundle list file (key=value or YAML) and print it back")
    parsep.add_argument("file", help="Path to the bundle list")
    parsep.add_argument("--json", action="store_true", help="Output machine-readable JSON")

    refsp = sp.add_parser("refs", help="Show refs published from bundles")
    refsp.add_argument("--repo", required=True, help="Repository directory")
    refsp.add_argument("--prefix", default="refs/bundles/", help="Ref prefix to list")
    refsp.add_argument("--json", action="store_true", help="Output machine-readable JSON")

    args = parser.parse_args(argv)
    settings = load_settings()
    _setup_logging(settings.log_level)

    if args.cmd == "init":
        repo = Repository.init(args.repo)
        print(f"Initialized empty repository in {repo.root}")
        return 0

    if args.cmd == "fetch":
        try:
            repo = Repository.open(args.repo)
        except FileNotFoundError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        try:
            res = fetch_bundle_uri(repo, args.uri, settings=settings)
        except RefUpdateError as e:
            print(f"fatal: {e}", file=sys.stderr)
            return EXIT_FATAL
        except BundleURIError as e:
            if args.json:
                print(json.dumps({"uri": args.uri, "ok": False, "error": type(e).__name__, "message": str(e)}, ensure_ascii=False))
            else:
                print(f"error: {e}", file=sys.stderr)
            return 1
        if args.json:
            print(json.dumps({"ok": True, **res.as_dict()}, ensure_ascii=False))
        else:
            print(f"OK: fetched {args.uri}")
            for r in res.updated_refs:
                old = r.old_oid or "(new)"
                print(f"  {old} -> {r.new_oid} {r.name}")
        return 0

    if args.cmd == "list":
        if args.list_cmd == "parse":
            try:
                bundle_list = load_bundle_list(args.file)
            except SpecError as e:
                print(f"error: {e}", file=sys.stderr)
                return 2
            if args.json:
                print(json.dumps(bundle_list_as_dict(bundle_list), ensure_ascii=False))
            else:
                print_bundle_list(bundle_list, sys.stdout)
            return 0

    if args.cmd == "refs":
        try:
            repo = Repository.open(args.repo)
        except FileNotFoundError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        refs = repo.refs.list_refs(args.prefix)
        if args.json:
            print(json.dumps([{"name": n, "oid": o} for n, o in refs], ensure_ascii=False))
        else:
            for name, oid in refs:
                print(f"{oid} {name}")
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
