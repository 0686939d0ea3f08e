"""
CLI tool for ranking carriers against a client profile.
Usage: python -m cli.evaluate_profile <profile.json>
"""

import sys
import json
import argparse
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from carrierfit.config import Settings, get_settings
from carrierfit.core.document_store import get_document_store
from carrierfit.core.embedding_service import get_embedding_service
from carrierfit.core.exceptions import CarrierFitError
from carrierfit.core.observability import configure_logging
from carrierfit.core.recommendation_cache import get_recommendation_cache
from carrierfit.core.vector_search import get_vector_index
from carrierfit.pipeline.models import EvaluationResult
from carrierfit.pipeline.orchestrator import CarrierMatchPipeline


# ANSI color codes for terminal output
class Colors:
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def print_step(step_num: int, name: str, status: str):
    """Print step progress."""
    if status == "running":
        icon = "..."
        color = Colors.YELLOW
    elif status == "complete":
        icon = "done"
        color = Colors.GREEN
    else:
        icon = "!"
        color = Colors.RED

    print(f"  [{step_num}/4] {name:<22} {color}{icon}{Colors.ENDC}")


def fit_color(score: int) -> str:
    if score >= 80:
        return Colors.GREEN
    if score >= 60:
        return Colors.YELLOW
    return Colors.RED


def print_result(result: EvaluationResult):
    """Print the ranked carriers in a formatted way."""
    print("\n" + "=" * 70)
    print(f"{Colors.BOLD}        CARRIER RECOMMENDATIONS{Colors.ENDC}")
    print("=" * 70)

    for position, rec in enumerate(result.recommendations, start=1):
        color = fit_color(rec.fit_score)
        print(f"\n{Colors.BOLD}{position}. {rec.carrier_name}{Colors.ENDC} "
              f"{color}{rec.fit_score}/100{Colors.ENDC} ({rec.confidence} confidence)")

        for reason in rec.reasons:
            print(f"   + {reason}")
        for advisory in rec.advisories:
            print(f"   {Colors.YELLOW}! {advisory}{Colors.ENDC}")
        if rec.further_review_likely:
            print(f"   {Colors.YELLOW}Further medical review likely{Colors.ENDC}")

        for citation in rec.citations:
            source = citation.document_title
            if citation.section:
                source += f", {citation.section}"
            print(f"   {Colors.CYAN}[{citation.score:.2f}] {source} "
                  f"(effective {citation.effective_date}){Colors.ENDC}")
            print(f"      \"{citation.snippet}\"")

    summary = result.summary
    print(f"\n{Colors.BOLD}Summary:{Colors.ENDC}")
    print(f"  Top pick: {summary.top_pick or 'none'}")
    print(f"  Average fit: {summary.average_fit}")
    print(f"  Carriers evaluated: {summary.total_carriers_evaluated}")
    if summary.further_review_recommended:
        print(f"  {Colors.YELLOW}Further review recommended{Colors.ENDC}")

    if result.warnings:
        print(f"\n{Colors.YELLOW}{Colors.BOLD}Warnings:{Colors.ENDC}")
        for warning in result.warnings:
            print(f"  - {warning}")

    print(f"\n{Colors.BOLD}Evaluation ID:{Colors.ENDC} {result.evaluation_id}")
    print(f"{Colors.BOLD}Processing time:{Colors.ENDC} {result.metrics.total_duration_seconds:.1f} seconds")


def build_pipeline(settings: Settings, progress_callback=None) -> CarrierMatchPipeline:
    """Wire the pipeline for the configured backend; MongoDB deployments also cache results."""
    use_mongodb = settings.vector_backend == "mongodb"
    pipeline = CarrierMatchPipeline(
        embedding_service=get_embedding_service(),
        vector_index=get_vector_index(settings),
        document_store=get_document_store(),
        cache=get_recommendation_cache() if use_mongodb else None,
        settings=settings,
        progress_callback=progress_callback,
    )
    if not use_mongodb:
        pipeline.rebuild_index()
    return pipeline


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Rank carriers for a client underwriting profile",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m cli.evaluate_profile data/profiles/standard.json
  python -m cli.evaluate_profile data/profiles/diabetic.json --top 3
  cat profile.json | python -m cli.evaluate_profile --json
        """
    )

    parser.add_argument(
        "file",
        nargs="?",
        help="Path to client profile JSON"
    )
    parser.add_argument(
        "--top", "-n",
        type=int,
        help="Maximum number of carriers to show"
    )
    parser.add_argument(
        "--json", "-j",
        action="store_true",
        help="Output result as JSON only"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress progress output"
    )

    args = parser.parse_args()

    if args.file:
        file_path = Path(args.file)
        if not file_path.exists():
            print(f"{Colors.RED}Error: File not found: {args.file}{Colors.ENDC}")
            sys.exit(1)
        raw_profile = file_path.read_text()
    elif not sys.stdin.isatty():
        raw_profile = sys.stdin.read()
    else:
        parser.print_help()
        sys.exit(1)

    try:
        profile = json.loads(raw_profile)
    except json.JSONDecodeError as e:
        print(f"{Colors.RED}Error: Profile is not valid JSON: {e}{Colors.ENDC}")
        sys.exit(1)

    settings = get_settings()
    if not args.json:
        configure_logging("WARNING" if not args.quiet else "ERROR")

    def progress_callback(step: int, name: str, status: str):
        if not args.quiet and not args.json:
            print_step(step, name, status)

    if not args.quiet and not args.json:
        print(f"\n{Colors.BOLD}Carrier Evaluation{Colors.ENDC}")
        print("-" * 40)

    try:
        pipeline = build_pipeline(settings, progress_callback)
        result = pipeline.run_evaluation(profile, top_n=args.top)

        if args.json:
            print(json.dumps(result.model_dump(mode="json"), indent=2))
        else:
            print_result(result)

    except (CarrierFitError, ValueError) as e:
        if args.json:
            print(json.dumps({"success": False, "error": str(e)}))
        else:
            print(f"\n{Colors.RED}Error: {e}{Colors.ENDC}")
        sys.exit(1)


if __name__ == "__main__":
    main()
