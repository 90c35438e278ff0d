#!/usr/bin/env python3
"""Embed FAQ questions and store the vectors in the ``faq`` table.

Uses the same embedding model as the running service, so stored vectors
and query vectors are comparable. Only the question text is embedded.

Usage:
    python -m scripts.generate_embeddings          # rows with no embedding yet
    python -m scripts.generate_embeddings --all    # re-embed every row

Environment Variables:
    FAQBOT_SUPABASE_URL - Supabase project URL
    FAQBOT_SUPABASE_KEY - Supabase service key
    FAQBOT_EMBEDDING_MODEL - sentence-transformers model (default: all-MiniLM-L6-v2)
"""

import argparse
import asyncio
import sys
from typing import Any, Dict, Tuple

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from api.tools.embedding import EmbeddingClient, create_embedding_client
from libs.common.settings import get_settings
from libs.supabase.client import SupabaseClient, create_supabase_client


@retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    reraise=True,
)
async def store_embedding(supabase: SupabaseClient, faq_id: Any, embedding: list) -> None:
    await supabase.update("faq", {"embedding": embedding}, {"id": faq_id})


async def embed_faqs(
    supabase: SupabaseClient,
    embedder: EmbeddingClient,
    regenerate_all: bool = False,
) -> Tuple[int, int]:
    """
    Embed FAQ questions and write the vectors back.

    Returns:
        (stored, failed) row counts; one failing row does not stop the run
    """
    filters: Dict[str, str] = {} if regenerate_all else {"embedding": "is.null"}
    faqs = await supabase.select("faq", columns="id,question", filters=filters)
    print(f"📋 Found {len(faqs)} FAQs to embed")

    stored = failed = 0
    for faq in faqs:
        try:
            embedding = await embedder.generate(faq["question"])
            await store_embedding(supabase, faq["id"], embedding)
        except Exception as e:
            failed += 1
            print(f"❌ FAQ {faq['id']}: {e}")
            continue
        stored += 1
        print(f"✅ FAQ {faq['id']}: {faq['question'][:50]!r}")

    return stored, failed


async def run(regenerate_all: bool) -> int:
    settings = get_settings()
    supabase = create_supabase_client(settings)
    if supabase is None:
        print("❌ Error: FAQBOT_SUPABASE_URL and FAQBOT_SUPABASE_KEY must be set")
        return 1

    embedder = create_embedding_client(settings)
    print(f"⏳ Loading embedding model {embedder.model_name} (first run downloads it)...")
    if not await embedder.initialize():
        print("❌ Error: embedding model could not be loaded")
        await supabase.close()
        return 1

    try:
        stored, failed = await embed_faqs(supabase, embedder, regenerate_all=regenerate_all)
    finally:
        await embedder.close()
        await supabase.close()

    print(f"🎉 Stored {stored} embeddings, {failed} failed")
    return 1 if failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Embed FAQ questions into the faq table")
    parser.add_argument(
        "--all",
        action="store_true",
        dest="regenerate_all",
        help="Re-embed every FAQ, not only rows without an embedding",
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args.regenerate_all)))


if __name__ == "__main__":
    main()
