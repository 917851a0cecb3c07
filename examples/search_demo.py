"""
Search example demonstrating chunking, embedding and span-resolved results.
"""

import asyncio

from spanrag import (
    Document,
    DocumentStore,
    HashingEmbedding,
    RetrievalConfig,
)


DOCUMENTS = {
    "python": (
        "Python is a programming language that lets you work quickly.\n\n"
        "It is used for web development, data analysis and automation. "
        "Its standard library covers many common tasks."
    ),
    "gardening": (
        "Water the plants early in the morning.\n\n"
        "Tomatoes need full sun. Basil grows well next to tomatoes."
    ),
}


async def main():
    # Small fragments so that every document is split
    config = RetrievalConfig(maximum_fragment_size=80, maximum_fragment_overlap=20)
    config.configure_logging()

    store = DocumentStore()
    for document_id, text in DOCUMENTS.items():
        store.add_document(Document(id=document_id, text=text))

    # HashingEmbedding runs offline; swap in OpenAIEmbedding or LocalEmbedding
    # for real semantic search.
    coordinator = config.build_coordinator(HashingEmbedding(), store=store)

    report = await coordinator.embed_all()
    report.raise_for_failures()
    print(f"Indexed {report.total_fragments} fragments from {len(report.succeeded)} documents\n")

    for query in ["Which language is good for automation?", "When should I water tomatoes?"]:
        print(f"Query: {query}")
        for hit in await coordinator.search(query, max_results=2):
            print(f"  [{hit.score:.3f}] {hit.document_id} {hit.key.span}: {hit.text}")
        print()


if __name__ == "__main__":
    asyncio.run(main())
