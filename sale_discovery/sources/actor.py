"""
Apify scraping-actor adapter (Instagram hashtag scraper by default).

Starts an actor run, polls the run until it reaches a terminal status,
then reads the run's default dataset. Each dataset item exposes an `id`,
`caption` and `url`.
"""

import logging
import time
from typing import Callable, Optional

from .base import BaseAdapter
from ..config import get_discovery_config
from ..errors import ConfigurationError, TransportError
from ..models import SourceType

logger = logging.getLogger(__name__)


class ActorAdapter(BaseAdapter):
    """
    Adapter for a remote Apify actor.

    Without an API token the adapter is disabled and returns no postings
    without counting as a failure.
    """

    source_type = SourceType.INSTAGRAM

    API_BASE = "https://api.apify.com/v2"
    TERMINAL_FAILURES = {"FAILED", "ABORTED", "TIMED-OUT"}

    def __init__(
        self,
        token: Optional[str] = None,
        actor_id: Optional[str] = None,
        hashtags: Optional[list[str]] = None,
        poll_interval: Optional[float] = None,
        max_wait: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        **kwargs,
    ):
        super().__init__(**kwargs)
        config = get_discovery_config()
        self.token = token if token is not None else config.apify_token
        self.actor_id = actor_id or config.actor_id
        self.hashtags = hashtags or list(config.actor_hashtags)
        self.poll_interval = poll_interval if poll_interval is not None else config.actor_poll_interval
        self.max_wait = max_wait if max_wait is not None else config.actor_max_wait
        self._sleep = sleep
        self._clock = clock

    @property
    def channel(self) -> str:
        return self.actor_id

    @property
    def key(self) -> str:
        return f"actor:{self.actor_id}"

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def fetch_candidates(self) -> list[dict]:
        if not self.configured:
            logger.debug("Apify discovery skipped - no token")
            self.last_error = None
            return []
        return super().fetch_candidates()

    def fetch_raw(self) -> list[dict]:
        if not self.token:
            raise ConfigurationError("APIFY_TOKEN is not set")

        run = self._start_run()
        run = self._wait_for_run(run)
        items = self._fetch_dataset(run["defaultDatasetId"])

        postings = []
        for item in items:
            native_id = item.get("id") or item.get("shortCode")
            caption = (item.get("caption") or "").strip()
            if not native_id or not caption:
                continue
            postings.append({
                "native_id": str(native_id),
                "url": item.get("url"),
                "raw_text": caption,
            })
        return postings

    def _start_run(self) -> dict:
        logger.info(f"Starting Apify actor {self.actor_id} for {len(self.hashtags)} hashtags")
        response = self._post(
            f"{self.API_BASE}/acts/{self.actor_id}/runs",
            params={"token": self.token},
            json={
                "hashtags": self.hashtags,
                "resultsLimit": self.max_items,
                "proxyConfiguration": {"useApifyProxy": True},
            },
        )
        return response.json()["data"]

    def _wait_for_run(self, run: dict) -> dict:
        """
        Poll the run until it succeeds.

        Raises:
            TransportError: if the run fails or does not finish within max_wait
        """
        deadline = self._clock() + self.max_wait

        while True:
            status = run.get("status")
            if status == "SUCCEEDED":
                return run
            if status in self.TERMINAL_FAILURES:
                raise TransportError(f"Apify run {run.get('id')} ended with status {status}")
            if self._clock() >= deadline:
                raise TransportError(f"Apify run {run.get('id')} not finished after {self.max_wait}s")

            self._sleep(self.poll_interval)
            response = self._get(
                f"{self.API_BASE}/actor-runs/{run['id']}",
                params={"token": self.token},
            )
            run = response.json()["data"]

    def _fetch_dataset(self, dataset_id: str) -> list[dict]:
        response = self._get(
            f"{self.API_BASE}/datasets/{dataset_id}/items",
            params={"token": self.token, "clean": "true", "limit": self.max_items},
        )
        data = response.json()
        return data if isinstance(data, list) else []
