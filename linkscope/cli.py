#!/usr/bin/env python3
"""
linkscope CLI - Command Line Interface

Resolve a link's redirect chain and print its risk report.
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from linkscope.config.logging import configure_logging
from linkscope.config.settings import Settings, get_settings
from linkscope.services.annotator import SUPPORTED_LANGUAGES, Annotation, template_annotation
from linkscope.services.interfaces import InvalidInputError
from linkscope.services.link_analyzer import create_link_analyzer
from linkscope.services.redirect_interfaces import AnalysisResult

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_INPUT = 2
EXIT_CANCELLED = 130

RISK_MARKERS = {
    "secure": "✅",
    "caution": "⚠️ ",
    "danger": "🚨",
    "critical": "☠️ ",
}


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return number


def _positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="linkscope",
        description="Resolve URL redirect chains and score their risk",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s analyze https://bit.ly/abc123             # Readable report
  %(prog)s analyze https://bit.ly/abc123 --json      # Machine-readable result
  %(prog)s analyze http://example.tk/a --annotate --lang fr
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    analyze_parser = subparsers.add_parser('analyze', help='Analyze a URL')
    analyze_parser.add_argument('url', help='Absolute http(s) URL to analyze')
    analyze_parser.add_argument('--max-hops', type=_positive_int, help='Maximum chain length, original URL included')
    analyze_parser.add_argument('--timeout', type=_positive_float, help='Total resolution budget in seconds')
    analyze_parser.add_argument('--json', action='store_true', help='Print the result as JSON')
    analyze_parser.add_argument('--lang', default='en', choices=SUPPORTED_LANGUAGES, help='Annotation language')
    analyze_parser.add_argument('--annotate', action='store_true', help='Include a plain-language annotation')

    return parser


def settings_for(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    """Apply command-line overrides on top of the environment settings."""
    settings = base or get_settings()
    overrides = {}
    if args.max_hops is not None:
        overrides['MAX_HOPS'] = args.max_hops
    if args.timeout is not None:
        overrides['TOTAL_TIMEOUT'] = args.timeout
    return settings.model_copy(update=overrides) if overrides else settings


def format_report(result: AnalysisResult, annotation: Optional[Annotation] = None) -> str:
    """Render a result as a readable plain-text report."""
    level = result.risk_level.value
    lines = [
        f"URL:          {result.requested_url}",
        f"Destination:  {result.final_destination}",
        f"Risk:         {RISK_MARKERS[level]} {level.upper()} ({result.risk_score}/100)",
        f"Redirects:    {result.total_redirect_count}",
        f"Scan time:    {result.scan_duration_seconds:.2f}s",
    ]
    if not result.is_complete:
        lines.append("Status:       incomplete (time budget exceeded)")
    elif result.chain.max_hops_reached:
        lines.append("Status:       stopped at the hop limit")

    lines.append("")
    lines.append("Redirect chain:")
    for index, hop in enumerate(result.chain):
        lines.append(f"  {index}. [{hop.status_code}] {hop.url}")

    if result.threats:
        lines.append("")
        lines.append("Threats:")
        for threat in result.threats:
            lines.append(f"  - {threat.description}")

    if annotation:
        lines.append("")
        lines.append(annotation.summary)
        lines.append(annotation.risk_assessment)
        for recommendation in annotation.recommendations:
            lines.append(f"  * {recommendation}")

    return "\n".join(lines)


async def analyze_command(args: argparse.Namespace, settings: Settings) -> int:
    analyzer = create_link_analyzer(settings)
    async with analyzer:
        result = await analyzer.analyze(args.url)

    annotation = template_annotation(result, args.lang) if args.annotate else None

    if args.json:
        payload = result.to_dict()
        if annotation:
            payload['annotation'] = annotation.to_dict()
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print(format_report(result, annotation))
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command != 'analyze':
        parser.print_help()
        return EXIT_ERROR

    settings = settings_for(args)
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    try:
        return asyncio.run(analyze_command(args, settings))
    except InvalidInputError as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\n👋 Interrupted by user", file=sys.stderr)
        return EXIT_CANCELLED


if __name__ == "__main__":
    sys.exit(main())
