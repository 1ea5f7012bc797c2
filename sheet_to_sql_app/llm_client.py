"""HTTP client for an OpenAI-compatible chat-completions endpoint."""

import logging
from typing import Any, Dict, Optional

import requests

from .config import SheetSQLConfig
from .errors import UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)


def extract_sql(generated_text: str) -> str:
    """Pull the SQL statement out of a model reply (markdown fences, trailing prose)."""
    sql = (generated_text or "").strip()
    if "```sql" in sql:
        sql = sql.split("```sql")[1].split("```")[0].strip()
    elif "```" in sql:
        sql = sql.split("```")[1].split("```")[0].strip()

    # Take first SQL statement
    sql = sql.split("\n\n")[0]
    return sql.strip()


class LLMClient:
    """Generates one candidate SQL string per prompt"""

    def __init__(self, config: SheetSQLConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.llm_api_key:
            headers["Authorization"] = f"Bearer {self.config.llm_api_key}"
        return headers

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.config.llm_model,
            "messages": [
                {"role": "system", "content": "You write a single read-only DuckDB SQL query. Reply with SQL only."},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_new_tokens,
        }

    def generate_sql(self, prompt: str) -> str:
        timeout = self.config.llm_timeout
        try:
            response = self.session.post(
                self.config.llm_url,
                json=self._payload(prompt),
                headers=self._headers(),
                timeout=timeout,
            )
        except requests.Timeout as exc:
            logger.warning(f"LLM request timed out after {timeout}s")
            raise UpstreamTimeout("language model", timeout) from exc
        except requests.RequestException as exc:
            logger.error(f"LLM request failed: {exc}")
            raise UpstreamError("language model", str(exc)) from exc

        if response.status_code != 200:
            logger.warning("LLM endpoint returned %s: %s", response.status_code, response.text[:500])
            raise UpstreamError("language model", f"HTTP {response.status_code}")

        try:
            generated_text = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise UpstreamError("language model", "unexpected response format") from exc

        sql = extract_sql(generated_text)
        logger.info(f"Generated SQL: {sql}")
        return sql
