"""
RecipeFinder: vector search over the BigQuery recipe table.

The query text ("Cuisine/Preference: ... Dietary Restrictions: ...") is
embedded with the caller's Gemini key, then matched against the table's
``Embedding`` column with VECTOR_SEARCH (top 10, cosine distance).

The BigQuery client is synchronous, so the query runs in asyncio.to_thread
to avoid blocking the event loop. Any failure returns an empty list and the
weekly plan falls back to the model's own knowledge.
"""

import asyncio
import logging
import os
import threading
from typing import Optional, Sequence

from veggie_muse.models.weekly_plan import FoundRecipe
from veggie_muse.services.ai_service import GeminiService

logger = logging.getLogger(__name__)

SEARCH_TOP_K = 10

_VECTOR_SEARCH_SQL = """
    SELECT
      base.title,
      base.ingredients,
      base.directions
    FROM
      VECTOR_SEARCH(
        TABLE `{table}`,
        'Embedding',
        (SELECT @query_embedding AS embedding),
        top_k => {top_k},
        distance_type => 'COSINE'
      )
"""


def search_text(cuisine_preference: str, dietary_restrictions: Sequence[str]) -> str:
    return (
        f"Cuisine/Preference: {cuisine_preference}. "
        f"Dietary Restrictions: {', '.join(dietary_restrictions) or 'None'}"
    )


class RecipeFinder:
    def __init__(self, table: Optional[str] = None, project: Optional[str] = None, location: Optional[str] = None):
        # Unset values are read from the environment on use, after .env is loaded.
        self._table = table
        self._project = project
        self._location = location
        self._client = None
        self._client_lock = threading.Lock()

    @property
    def table(self) -> str:
        return self._table if self._table is not None else os.getenv("BIGQUERY_RECIPES_TABLE", "")

    @property
    def enabled(self) -> bool:
        return bool(self.table)

    def _build_client(self):
        """Build the BigQuery client once (sync, call inside to_thread)."""
        with self._client_lock:
            if self._client is None:
                from google.cloud import bigquery

                self._client = bigquery.Client(project=self._project or os.getenv("BIGQUERY_PROJECT"))
            return self._client

    async def find(
        self,
        ai_service: GeminiService,
        cuisine_preference: str,
        dietary_restrictions: Sequence[str],
    ) -> list[FoundRecipe]:
        if not self.enabled:
            logger.info("[BigQuery Vector Search] BIGQUERY_RECIPES_TABLE not set; skipping search")
            return []

        text = search_text(cuisine_preference, dietary_restrictions)
        logger.info('[BigQuery Vector Search] Searching for: "%s"', text)
        try:
            embedding = await ai_service.embed_text(text)
            rows = await asyncio.to_thread(self._query_sync, embedding)
        except Exception as exc:
            logger.error("[BigQuery Vector Search] Search failed: %s", exc)
            return []

        found = []
        for row in rows:
            try:
                found.append(FoundRecipe.model_validate(dict(row)))
            except ValueError as exc:
                logger.warning("[BigQuery Vector Search] Skipping malformed row: %s", exc)
        logger.info("[BigQuery Vector Search] Found %d recipes.", len(found))
        return found

    def _query_sync(self, embedding: list[float]) -> list:
        """Synchronous implementation, runs in a thread pool."""
        from google.cloud import bigquery

        client = self._build_client()
        job_config = bigquery.QueryJobConfig(
            query_parameters=[bigquery.ArrayQueryParameter("query_embedding", "FLOAT64", embedding)]
        )
        sql = _VECTOR_SEARCH_SQL.format(table=self.table, top_k=SEARCH_TOP_K)
        location = self._location or os.getenv("BIGQUERY_LOCATION", "US")
        job = client.query(sql, job_config=job_config, location=location)
        return list(job.result())


recipe_finder = RecipeFinder()
