"""Best-effort agent that pulls context from links in the user's request."""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from MIRA_ANALYST.interfaces.agent import Agent
from MIRA_ANALYST.runtime.event_log import RunEventLog
from MIRA_ANALYST.tools.search import ExaContentsClient

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"https?://[^\s<>\"']+")
_TRAILING_PUNCTUATION = ".,;:!?)]}"


def extract_urls(text: str) -> List[str]:
    """Return unique http(s) URLs in order of first appearance."""
    if not text:
        return []
    seen: Dict[str, None] = {}
    for match in _URL_PATTERN.findall(text):
        url = match.rstrip(_TRAILING_PUNCTUATION)
        if url and url not in seen:
            seen[url] = None
    return list(seen)


class ExternalContextAgent(Agent):
    """Turns URLs in a request into a short context block, or an empty string."""

    def __init__(
        self,
        client: Optional[ExaContentsClient],
        timeout: float = 600.0,
        max_context_chars: int = 6000,
        event_log: RunEventLog | None = None,
    ) -> None:
        super().__init__(name="external_context_agent", description="Context from user-provided links")
        self.client = client
        self.timeout = timeout
        self.max_context_chars = max_context_chars
        self.event_log = event_log or RunEventLog()

    async def run(
        self,
        user_message: str,
        timeout: Optional[float] = None,
        event_log: RunEventLog | None = None,
    ) -> str:
        """Return a context block for the URLs in ``user_message``. Never raises."""
        events = event_log or self.event_log
        timeout = self.timeout if timeout is None else min(timeout, self.timeout)
        urls = extract_urls(user_message)
        if not urls:
            logger.info("No URLs detected for external context")
            return ""
        if self.client is None:
            logger.warning("EXA_API_KEY missing; skipping external context for %d URL(s)", len(urls))
            return ""

        logger.info("Fetching external context for %s", urls)
        try:
            results = await asyncio.wait_for(
                asyncio.to_thread(self.client.get_contents, urls),
                timeout=timeout,
            )
            context = self._format(results)
        except asyncio.TimeoutError:
            logger.warning("External context fetch timed out after %gs", timeout)
            return ""
        except Exception:  # pylint: disable=broad-except
            logger.exception("External context fetch failed")
            return ""

        events.record("external_context", {"urls": urls, "chars": len(context)})
        return context

    def _format(self, results: Any) -> str:
        blocks: List[str] = []
        for item in results or []:
            if not isinstance(item, dict):
                continue
            text = _as_text(item.get("text") or item.get("summary"))
            if not text:
                continue
            title = _as_text(item.get("title")) or "Untitled"
            url = _as_text(item.get("url") or item.get("id"))
            blocks.append(f"Source: {title} ({url})\n{text}")
        return "\n\n".join(blocks)[: self.max_context_chars].strip()


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()
