#!/usr/bin/env python3
"""citelens CLI - Pandoc citation tools from the command line.

Usage:
    citelens segments <document>
    citelens resolve <document> [options]
    citelens search <query> [options]
    citelens --version
    citelens --help

Commands:
    segments    Show the citation groups and segments found in a document
    resolve     Resolve and render the citations of a document
    search      Fuzzy-search the global bibliography

Examples:
    # Inspect citation syntax
    citelens segments chapter1.md

    # Render citations and bibliography with a different style
    citelens resolve chapter1.md --bibliography refs.json --style chicago-author-date

    # Find a citation key
    citelens search "smith deep" --bibliography refs.bib
"""

import argparse
import logging
import sys
from pathlib import Path

from bs4 import BeautifulSoup


def get_version():
    """Get package version."""
    from citelens import __version__
    return __version__


def _read_document(path: Path):
    if not path.exists():
        print(f"Error: Document not found: {path}")
        return None
    return path.read_text(encoding="utf-8")


def _plain(html: str) -> str:
    return BeautifulSoup(html, "html.parser").get_text()


def _entry_text(entry) -> str:
    """Plain text of a csl-entry, numbered entries joining their columns."""
    columns = entry.find_all("div", recursive=False)
    text = " ".join(c.get_text() for c in columns) if columns else entry.get_text()
    return " ".join(text.split())


def _load_config(args):
    from citelens.config import Config

    config = Config.from_env(args.env_file)
    if getattr(args, "bibliography", None):
        config.bibliography_path = args.bibliography
        config.pull_from_zotero = False
    if getattr(args, "style", None):
        if Path(args.style).expanduser().is_file():
            config.csl_style_path = args.style
        else:
            config.csl_style_url = args.style
            config.csl_style_path = None
    if getattr(args, "lang", None):
        config.csl_lang = args.lang
    return config


def cmd_segments(args):
    """Print the citation groups and segments of a document."""
    from citelens.core.parser import extract, tokenize

    text = _read_document(Path(args.document))
    if text is None:
        return 1

    segments = tokenize(text)
    groups = extract(segments)

    if not groups:
        print("No citations found")
        return 0

    for group in groups:
        print(f"[{group.start}:{group.end}] {group.mode.value}: {text[group.start:group.end]}")
        for citation in group.citations:
            details = [f"id={citation.id}"]
            if citation.prefix:
                details.append(f"prefix={citation.prefix!r}")
            if citation.locator:
                details.append(f"locator={citation.locator_label or ''}{citation.locator}")
            if citation.suffix:
                details.append(f"suffix={citation.suffix!r}")
            if citation.suppress_author:
                details.append("suppress-author")
            print(f"    {' '.join(details)}")
        if args.verbose:
            for seg in group.segments:
                print(f"      {seg.type.value:<14} {seg.start:>6}-{seg.end:<6} {seg.value!r}")

    print(f"\n{len(groups)} citation groups, {len(segments)} segments")
    return 0


def cmd_resolve(args):
    """Resolve and render the citations of a document."""
    from citelens.core.resolver import CitationResolver
    from citelens.exceptions import CitelensError

    input_path = Path(args.document)
    text = _read_document(input_path)
    if text is None:
        return 1

    try:
        config = _load_config(args)
        config.base_dir = str(input_path.resolve().parent)
        resolver = CitationResolver(config)
    except CitelensError as e:
        print(f"Error: {e}")
        return 1

    resolver.init()
    result = resolver.resolve(str(input_path.resolve()), text)
    if result is None:
        print("Error: citation resolver did not become ready")
        return 1

    print("=" * 60)
    print(f"Citations: {input_path.name}")
    print("=" * 60)
    print(f"Keys:       {len(result.keys)}")
    print(f"Resolved:   {', '.join(sorted(result.resolved_keys)) or '-'}")
    print(f"Unresolved: {', '.join(sorted(result.unresolved_keys)) or '-'}")

    if result.citations:
        print("\nCitations:")
        for citation in result.citations:
            print(f"  [{citation.start}:{citation.end}] {_plain(citation.val)}")
            if citation.note:
                print(f"      note {citation.note_index}: {_plain(citation.note)}")

    if result.bibliography is not None:
        print("\nBibliography:")
        if args.html:
            print(result.bibliography_html)
        else:
            for entry in result.bibliography.find_all(class_="csl-entry"):
                print(f"  {_entry_text(entry)}")

    return 0 if not result.unresolved_keys or not args.strict else 2


def cmd_search(args):
    """Fuzzy-search the global bibliography."""
    from citelens.core.resolver import CitationResolver
    from citelens.exceptions import CitelensError

    try:
        resolver = CitationResolver(_load_config(args))
    except CitelensError as e:
        print(f"Error: {e}")
        return 1

    resolver.init()
    matches = resolver.search(args.query, limit=args.limit)
    if not matches:
        print(f"No entries match: {args.query}")
        return 1

    print(f"\n{'Key':<30} {'Score':<7} Title")
    print("-" * 60)
    for entry, score in matches:
        title = str(entry.get("title", ""))[:50]
        print(f"{entry['id']:<30} {score:<7.1f} {title}")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="citelens",
        description="citelens - Pandoc citation parsing, resolution and rendering",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  citelens segments chapter1.md -v
  citelens resolve chapter1.md --bibliography refs.json
  citelens search "smith" --bibliography refs.bib
        """
    )
    parser.add_argument("--version", action="version", version=f"citelens {get_version()}")
    parser.add_argument("--env-file", help="Read CITELENS_* settings from this .env file")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level (default: WARNING)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # segments command
    segments_parser = subparsers.add_parser(
        "segments",
        help="Show citation groups and segments",
        description="Tokenize the citation syntax of a document without resolving it."
    )
    segments_parser.add_argument("document", help="Input document (markdown, txt)")
    segments_parser.add_argument("-v", "--verbose", action="store_true",
                                 help="Also print every segment")

    # resolve command
    resolve_parser = subparsers.add_parser(
        "resolve",
        help="Resolve and render citations",
        description="Resolve cited keys and render citations and bibliography. "
                    "Frontmatter overrides in the document are honored."
    )
    resolve_parser.add_argument("document", help="Input document (markdown, txt)")
    resolve_parser.add_argument("--bibliography", help="Global bibliography file")
    resolve_parser.add_argument("--style", help="CSL style id, URL or file")
    resolve_parser.add_argument("--lang", help="Locale (default: en-US)")
    resolve_parser.add_argument("--html", action="store_true",
                                help="Print the bibliography as HTML")
    resolve_parser.add_argument("--strict", action="store_true",
                                help="Exit with status 2 when keys are unresolved")

    # search command
    search_parser = subparsers.add_parser(
        "search",
        help="Search bibliography entries",
        description="Fuzzy-search bibliography keys and titles."
    )
    search_parser.add_argument("query", help="Partial key or title")
    search_parser.add_argument("--bibliography", help="Global bibliography file")
    search_parser.add_argument("--limit", type=int, default=20,
                               help="Maximum number of results (default: 20)")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    from citelens.utils.logging import setup_logging
    setup_logging(level=getattr(logging, args.log_level))

    # Dispatch to command handler
    commands = {
        "segments": cmd_segments,
        "resolve": cmd_resolve,
        "search": cmd_search,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
