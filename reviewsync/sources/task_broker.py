"""
Async Task Broker (DataForSEO)
==============================

Submit-now / collect-later protocol for providers whose review queries are
billed per batch and only complete minutes to hours after submission.

Per invocation:
    1. GET  {base}/tasks_ready      -> pick the most recently posted ready task
       GET  {base}/task_get/{id}    -> its items are this cycle's yield
    2. POST {base}/task_post        -> queue a fresh task for a later cycle,
                                       whatever step 1 produced

No task state is kept locally: readiness is re-derived from the provider on
every call. Older ready tasks are left unconsumed.

Endpoints:
    https://api.dataforseo.com/v3/business_data/{google|yelp}/reviews/...
Auth:
    HTTP Basic (DATAFORSEO_LOGIN / DATAFORSEO_PASSWORD)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests

from .base import ProviderError, ProviderUnavailableError, MalformedResponseError

logger = logging.getLogger(__name__)


# DataForSEO status code for a successful API call / task
STATUS_OK = 20000
# Task accepted and queued
STATUS_TASK_CREATED = 20100


@dataclass
class TaskCollection:
    """What one broker invocation produced."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    consumed_task_id: Optional[str] = None
    posted_task_id: Optional[str] = None
    ready_count: int = 0
    error: Optional[str] = None


class AsyncTaskBroker:
    """
    Poll-then-post client for one DataForSEO reviews endpoint family.

    Args:
        base_url: e.g. https://api.dataforseo.com/v3/business_data/google/reviews
        login: DataForSEO login
        password: DataForSEO password
        session: requests.Session (shared with the adapter)
        timeout: (connect, read) seconds
    """

    def __init__(
        self,
        base_url: str,
        login: str,
        password: str,
        session: Optional[requests.Session] = None,
        timeout: Tuple[float, float] = (10.0, 30.0),
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = (login, password)
        self.session = session or requests.Session()
        self.timeout = timeout

    def _call(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}/{path}"
        try:
            response = self.session.request(method, url, auth=self.auth, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ProviderUnavailableError(f"DataForSEO {path} failed: {e}") from e

        if response.status_code >= 400:
            raise ProviderUnavailableError(
                f"DataForSEO {path} returned {response.status_code}",
                status_code=response.status_code,
                response=response.text[:500],
            )
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"DataForSEO {path}: invalid JSON") from e

        if not isinstance(data, dict):
            raise MalformedResponseError(f"DataForSEO {path}: expected an object")
        if data.get("status_code") != STATUS_OK:
            raise ProviderUnavailableError(
                f"DataForSEO {path}: {data.get('status_message')} (code: {data.get('status_code')})",
                status_code=data.get("status_code"),
                response=data,
            )
        tasks = data.get("tasks")
        if tasks is not None and not isinstance(tasks, list):
            raise MalformedResponseError(f"DataForSEO {path}: 'tasks' is not a list")
        return data

    # =========================================================================
    # Step 1: collect
    # =========================================================================

    def list_ready_tasks(self) -> List[Dict[str, Any]]:
        """Ready task descriptors ({id, date_posted, ...}) in provider order."""
        data = self._call("GET", "tasks_ready")
        ready = []
        for task in data.get("tasks") or []:
            if not isinstance(task, dict):
                raise MalformedResponseError("DataForSEO tasks_ready: task entry is not an object")
            for result in task.get("result") or []:
                if isinstance(result, dict) and result.get("id"):
                    ready.append(result)
        return ready

    @staticmethod
    def pick_latest(ready: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Most recently posted task; ties keep provider order."""
        latest = None
        for task in ready:
            if latest is None or str(task.get("date_posted") or "") > str(latest.get("date_posted") or ""):
                latest = task
        return latest

    def get_task_items(self, task_id: str) -> List[Dict[str, Any]]:
        """
        Items of one completed task.

        A task whose own status code is not 20000 yields nothing.
        """
        data = self._call("GET", f"task_get/{task_id}")
        tasks = data.get("tasks") or []
        if not tasks:
            return []

        task = tasks[0]
        if not isinstance(task, dict):
            raise MalformedResponseError(f"DataForSEO task {task_id}: task entry is not an object")
        if task.get("status_code") != STATUS_OK:
            logger.warning(
                f"DataForSEO task {task_id} finished with {task.get('status_message')} "
                f"(code: {task.get('status_code')})"
            )
            return []

        results = task.get("result") or []
        if not results:
            return []
        if not isinstance(results, list) or not isinstance(results[0], dict):
            raise MalformedResponseError(f"DataForSEO task {task_id}: 'result' is not a list of objects")
        items = results[0].get("items") or []
        if not isinstance(items, list):
            raise MalformedResponseError(f"DataForSEO task {task_id}: 'items' is not a list")
        return items

    # =========================================================================
    # Step 2: post
    # =========================================================================

    def post_task(self, payload: Dict[str, Any]) -> Optional[str]:
        """Queue a new task. Returns its id."""
        data = self._call("POST", "task_post", json=[payload])
        tasks = data.get("tasks") or []
        if not tasks:
            raise MalformedResponseError("DataForSEO task_post returned no tasks")

        task = tasks[0]
        if not isinstance(task, dict):
            raise MalformedResponseError("DataForSEO task_post: task entry is not an object")
        if task.get("status_code") not in (STATUS_OK, STATUS_TASK_CREATED):
            raise ProviderUnavailableError(
                f"DataForSEO task_post rejected: {task.get('status_message')} (code: {task.get('status_code')})",
                status_code=task.get("status_code"),
            )
        return task.get("id")

    # =========================================================================
    # Full protocol
    # =========================================================================

    def collect_and_post(self, payload: Dict[str, Any]) -> TaskCollection:
        """
        Collect the latest ready task, then always queue a new one.

        Raises:
            ProviderError: only when collection failed AND posting failed
        """
        collection = TaskCollection()
        collect_error: Optional[ProviderError] = None

        try:
            ready = self.list_ready_tasks()
            collection.ready_count = len(ready)
            latest = self.pick_latest(ready)
            if latest is not None:
                collection.consumed_task_id = latest["id"]
                collection.items = self.get_task_items(latest["id"])
                if len(ready) > 1:
                    logger.info(
                        f"{len(ready)} ready tasks at {self.base_url}; consumed {latest['id']}, "
                        f"{len(ready) - 1} left unconsumed"
                    )
            else:
                logger.info(f"No ready tasks at {self.base_url}")
        except ProviderError as e:
            collect_error = e
        except (TypeError, ValueError, AttributeError, KeyError) as e:
            collect_error = MalformedResponseError(f"DataForSEO collect: unexpected payload shape ({type(e).__name__}: {e})")

        if collect_error is not None:
            collection.items = []
            collection.error = collect_error.message
            logger.warning(f"DataForSEO collect failed: {collect_error.message}")

        try:
            collection.posted_task_id = self.post_task(payload)
            logger.info(f"Queued DataForSEO task {collection.posted_task_id} for next cycle")
        except ProviderError as e:
            logger.error(f"DataForSEO task_post failed: {e.message}")
            if collect_error is not None:
                raise collect_error

        return collection
