"""
One-command ingestion script for carrier underwriting guidelines.
Creates the document store schema, registers carriers and ingests each
guideline text file listed in a JSON manifest.

Usage: python scripts/ingest_guidelines.py [manifest.json]

Manifest format:
    {
      "carriers": [
        {"id": "acme", "name": "Acme Life", "preference_rank": 1,
         "available_states": ["TX", "CA"]}
      ],
      "documents": [
        {"carrier_id": "acme", "title": "Acme Term Guide",
         "effective_date": "2025-01-01", "path": "acme_term.txt"}
      ]
    }

Document paths are resolved relative to the manifest.
"""

import sys
import json
from datetime import date
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from carrierfit.config import get_settings
from carrierfit.core.document_store import get_document_store
from carrierfit.core.embedding_service import get_embedding_service
from carrierfit.core.exceptions import CarrierFitError
from carrierfit.core.mongodb_client import close_mongodb_client
from carrierfit.core.observability import configure_logging, get_observability
from carrierfit.core.vector_search import get_vector_index
from carrierfit.pipeline.models import Carrier, IngestionRequest
from carrierfit.pipeline.orchestrator import CarrierMatchPipeline


def print_step(step: str, status: str = "..."):
    """Print step with status."""
    icons = {
        "...": "...",
        "done": "done",
        "skip": "skip",
        "fail": "FAIL"
    }
    print(f"  [{icons.get(status, status)}] {step}")


def print_header(text: str):
    """Print a header."""
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}")


def load_manifest(path: Path) -> dict:
    """Load the JSON manifest."""
    with open(path, 'r') as f:
        return json.load(f)


def build_requests(manifest: dict, base_dir: Path) -> list:
    """Turn manifest document entries into ingestion requests, skipping unreadable files."""
    requests = []
    for entry in manifest.get("documents", []):
        file_path = base_dir / entry["path"]
        if not file_path.exists():
            print_step(f"{entry['path']}: file not found", "skip")
            continue

        requests.append(
            IngestionRequest(
                document_text=file_path.read_text(encoding="utf-8"),
                carrier_id=entry["carrier_id"],
                title=entry.get("title") or file_path.stem,
                effective_date=date.fromisoformat(entry["effective_date"]),
                version=entry.get("version"),
                source_location=str(file_path),
            )
        )
    return requests


def main():
    """Main ingestion function."""
    settings = get_settings()
    configure_logging(settings.log_level)

    manifest_path = Path(sys.argv[1]) if len(sys.argv) > 1 else settings.data_dir / "guidelines.json"

    print_header("Carrier Guideline Ingestion")

    if not manifest_path.exists():
        print(f"\n  ERROR: Manifest not found: {manifest_path}")
        sys.exit(1)
    manifest = load_manifest(manifest_path)
    print_step(f"Loaded manifest {manifest_path.name}", "done")

    # Check embedding provider
    if not settings.fireworks_api_key:
        print("\n  ERROR: Fireworks API key not configured!")
        print("  Please set CARRIERFIT_FIREWORKS_API_KEY in your .env file")
        sys.exit(1)
    print_step("Fireworks API key configured", "done")

    try:
        store = get_document_store()
        print_step(f"Document store ready: {settings.database_url}", "done")
        vector_index = get_vector_index(settings)
        print_step(f"Vector index backend: {settings.vector_backend}", "done")
    except CarrierFitError as e:
        print(f"\n  ERROR: {e}")
        sys.exit(1)

    print_header("Registering Carriers")
    for entry in manifest.get("carriers", []):
        carrier = Carrier.model_validate(entry)
        store.upsert_carrier(carrier)
        print_step(f"{carrier.id}: {carrier.name}", "done")

    print_header("Ingesting Documents")
    requests = build_requests(manifest, manifest_path.parent)
    if not requests:
        print_step("No documents to ingest", "skip")
        return

    pipeline = CarrierMatchPipeline(
        embedding_service=get_embedding_service(),
        vector_index=vector_index,
        document_store=store,
        settings=settings,
    )
    results = pipeline.ingest_many(requests)

    for result in results:
        status = "done" if result.unembedded_count == 0 else "fail"
        note = " (unchanged)" if result.reused_existing else ""
        print_step(
            f"{result.carrier_id} v{result.version}: {result.chunk_count} chunks, "
            f"{result.embedded_count} embedded{note}",
            status
        )

    missing = sum(r.unembedded_count for r in results)
    if missing:
        print(f"\n  {missing} chunks stored without vectors; retrying...")
        filled = pipeline.backfill_embeddings()
        print_step(f"Backfilled {filled}/{missing} chunks", "done" if filled == missing else "fail")

    print_header("Ingestion Complete")
    print(f"  Documents: {len(results)}")
    print(f"  Active documents in store: {store.count_documents()}")
    get_observability().flush()

    if settings.vector_backend == "mongodb":
        close_mongodb_client()


if __name__ == "__main__":
    main()
