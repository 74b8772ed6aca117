"""
Stanford HIVdb Sierra GraphQL client.

Turns an accumulated mutation set into a Sierra ``mutationsAnalysis``
request, performs exactly one POST and hands back the parsed JSON body.
Transport failures, non-2xx responses and undecodable bodies are
returned as ``{"error": True, "message": ...}`` instead of being raised,
so callers branch on the ``error`` key.

There is no retry: one call per invocation. A caller that needs a
deadline passes ``timeout``, which bounds the single request.

Reference: https://hivdb.stanford.edu/page/graphql/
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from config.settings import settings
from src.metrics import record_scoring_call
from src.models import Gene, GeneMutations

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Field selection is part of the protocol: enrichment reads
# levels[].drug.displayAbbr and levels[].text.
SIERRA_QUERY = """
query MutationsAnalysis($mutations: [String]!) {
  mutationsAnalysis(mutations: $mutations) {
    validationResults {
      level
      message
    }
    drugResistance {
      version {
        text
        publishDate
      }
      gene {
        name
        drugClasses {
          name
          fullName
        }
      }
      levels {
        drugClass {
          name
        }
        drug {
          name
          displayAbbr
          fullName
        }
        level
        text
      }
      mutationsByTypes {
        mutationType
        mutations {
          text
          isApobecMutation
          isUnusual
          primaryType
        }
      }
      commentsByTypes {
        commentType
        comments {
          name
          text
          highlightText
        }
      }
      drugScores {
        drugClass {
          name
        }
        drug {
          name
          displayAbbr
          fullName
        }
        score
        partialScores {
          mutations {
            text
          }
          score
        }
        text
      }
    }
  }
}
""".strip()

JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


# ===================================================================
# Request building
# ===================================================================

def scoring_error(message: str) -> Dict[str, Any]:
    """Tagged failure value returned in place of a Sierra payload."""
    return {"error": True, "message": message}


def build_mutation_list(accumulated: Any) -> List[str]:
    """Flatten per-gene codes into Sierra's ``GENE:CODE`` list (PR, RT, IN).

    ``accumulated`` may be a ``GeneMutations`` or a plain
    ``{"pr": [...], "rt": [...], "in": [...]}`` dict.
    """
    if not isinstance(accumulated, GeneMutations):
        accumulated = GeneMutations.model_validate(
            accumulated if isinstance(accumulated, dict) else {}
        )
    return [
        f"{gene.tag}{code}"
        for gene in Gene
        for code in accumulated.codes(gene)
    ]


def build_request_payload(
    accumulated: Any,
    operation_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the GraphQL POST body for a mutation set."""
    return {
        "operationName": operation_name or settings.SIERRA_OPERATION_NAME,
        "query": SIERRA_QUERY,
        "variables": {"mutations": build_mutation_list(accumulated)},
    }


def _describe(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


# ===================================================================
# Client
# ===================================================================

class SierraClient:
    """Async client for the Sierra ``mutationsAnalysis`` query.

    Parameters
    ----------
    url : str, optional
        GraphQL endpoint. Defaults to ``settings.SIERRA_URL``.
    http_client : httpx.AsyncClient, optional
        Shared client to issue requests with. When omitted the client
        creates (and owns) one using ``settings.SIERRA_TIMEOUT``.
    operation_name : str, optional
        GraphQL operation name sent with each request.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        operation_name: Optional[str] = None,
    ) -> None:
        self.url = url or settings.SIERRA_URL
        self.operation_name = operation_name or settings.SIERRA_OPERATION_NAME
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.SIERRA_TIMEOUT)

    async def analyze_mutations(
        self,
        accumulated: Any,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Score an accumulated mutation set.

        Parameters
        ----------
        accumulated : GeneMutations or dict
            Per-gene mutation codes.
        timeout : float, optional
            Caller-supplied bound (seconds) on this single request.

        Returns
        -------
        dict
            The parsed Sierra response unmodified, or
            ``{"error": True, "message": str}`` on any failure.
        """
        payload = build_request_payload(accumulated, self.operation_name)
        logger.info("Calling Sierra with %d mutations",
                    len(payload["variables"]["mutations"]))

        request_kwargs: Dict[str, Any] = {"json": payload, "headers": JSON_HEADERS}
        if timeout is not None:
            request_kwargs["timeout"] = timeout

        t0 = time.perf_counter()
        try:
            response = await self._http.post(self.url, **request_kwargs)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Sierra returned HTTP %d: %s",
                         exc.response.status_code, exc)
            record_scoring_call("http_error", time.perf_counter() - t0)
            return scoring_error(_describe(exc))
        except httpx.HTTPError as exc:
            logger.error("Sierra request failed: %s", _describe(exc))
            record_scoring_call("transport_error", time.perf_counter() - t0)
            return scoring_error(_describe(exc))
        except ValueError as exc:
            logger.error("Sierra response body is not valid JSON: %s", exc)
            record_scoring_call("decode_error", time.perf_counter() - t0)
            return scoring_error(_describe(exc))

        record_scoring_call("success", time.perf_counter() - t0)
        return data

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._http.aclose()


async def call_scoring_service(
    accumulated: Any,
    timeout: Optional[float] = None,
    url: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """One-shot helper: create a client, score ``accumulated``, close it."""
    client = SierraClient(url=url, http_client=http_client)
    try:
        return await client.analyze_mutations(accumulated, timeout=timeout)
    finally:
        await client.aclose()
