"""Search indexer adapters"""

from .meilisearch_indexer import MeilisearchIndexer, index_id_for, to_search_document

__all__ = ["MeilisearchIndexer", "index_id_for", "to_search_document"]
