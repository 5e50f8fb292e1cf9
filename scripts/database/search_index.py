"""
Minimal Meilisearch client used to keep the search index in line with the database.

Only what the database commands need is implemented: checking that the
instance is reachable and deleting all indexes belonging to this installation.
"""

from __future__ import annotations

import logging
import time

import requests

from config.settings import SearchConfig
from scripts.database.errors import SearchIndexError

logger = logging.getLogger(__name__)

# Indexes managed by the application, without the configured prefix
INDEX_NAMES = ("realm", "event", "series", "user", "playlist")

FINISHED_TASK_STATES = ("succeeded", "failed", "canceled")


class SearchIndex:
    """
    Connection to the Meilisearch instance.

    Args:
        search: Host, API key and index prefix
        request_timeout: Timeout in seconds for each HTTP request
        poll_interval: Delay between two checks of an enqueued task
    """

    def __init__(
        self,
        search: SearchConfig,
        request_timeout: float = 30,
        poll_interval: float = 0.2,
    ):
        self.base_url = search.host.rstrip("/")
        self.index_prefix = search.index_prefix
        self.request_timeout = request_timeout
        self.poll_interval = poll_interval
        self.session = requests.Session()

        key = search.key.get_secret_value()
        if key:
            self.session.headers.update({"Authorization": f"Bearer {key}"})

    @property
    def index_uids(self) -> list[str]:
        return [f"{self.index_prefix}{name}" for name in INDEX_NAMES]

    def connect(self) -> "SearchIndex":
        """
        Check that the instance is reachable and healthy.

        Raises:
            SearchIndexError: If the health check fails
        """
        try:
            response = self.session.get(
                f"{self.base_url}/health", timeout=self.request_timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise SearchIndexError(
                f"failed to connect to Meilisearch at {self.base_url}"
            ) from e

        logger.debug(f"Connected to Meilisearch at {self.base_url}")
        return self

    def clear(self) -> None:
        """
        Delete all indexes of this installation.

        No index writer lock is taken. Clearing is only done right after the
        database was wiped, when nothing else writes to the index.

        Raises:
            SearchIndexError: If any index could not be deleted
        """
        for uid in self.index_uids:
            self._delete_index(uid)
            logger.debug(f"Deleted search index '{uid}'")

    def _delete_index(self, uid: str) -> None:
        try:
            response = self.session.delete(
                f"{self.base_url}/indexes/{uid}", timeout=self.request_timeout
            )
            if response.status_code == 404:
                return
            response.raise_for_status()
            task = self._wait_for_task(response.json()["taskUid"])
        except (requests.exceptions.RequestException, KeyError, ValueError) as e:
            raise SearchIndexError(f"failed to delete search index '{uid}'") from e

        if task["status"] == "succeeded":
            return

        error = task.get("error") or {}
        if error.get("code") == "index_not_found":
            return
        raise SearchIndexError(
            f"deleting search index '{uid}' {task['status']}: "
            f"{error.get('message', 'no details')}"
        )

    def _wait_for_task(self, task_uid: int) -> dict:
        while True:
            response = self.session.get(
                f"{self.base_url}/tasks/{task_uid}", timeout=self.request_timeout
            )
            response.raise_for_status()
            task = response.json()
            if task["status"] in FINISHED_TASK_STATES:
                return task
            time.sleep(self.poll_interval)
