# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Watch-based manager for a single custom resource kind.

WatchManager keeps an in-memory cache of every object of one kind (optionally
narrowed by namespace and field selector) and calls a reconciler with the
object's key whenever the object is added, modified or deleted. CachedClient
reads from that cache and writes through to the API server.

Delivery is at-least-once: the manager relists and reconciles every cached
object each resync period, so reconcilers must be idempotent.
"""

import copy
import logging
import threading
from typing import Dict, List, Optional, Tuple

import urllib3
from kubernetes import client, watch

import constants
from errors import (
    ClusterError,
    KindUndefinedError,
    NotFoundError,
    TransientError,
    from_api_exception,
)
from models import ObjectKey, ResourceKind

logger = logging.getLogger(__name__)


class _ResourceExpired(Exception):
    """Watch resource version is too old (410 Gone); relist required"""


class ObjectCache:
    """Thread-safe store of raw objects keyed by ObjectKey"""

    def __init__(self):
        self._objects: Dict[ObjectKey, Dict] = {}
        self._lock = threading.Lock()
        self._synced = threading.Event()

    def get(self, key: ObjectKey) -> Optional[Dict]:
        with self._lock:
            obj = self._objects.get(key)
            return copy.deepcopy(obj) if obj is not None else None

    def put(self, key: ObjectKey, obj: Dict) -> None:
        with self._lock:
            self._objects[key] = obj

    def delete(self, key: ObjectKey) -> None:
        with self._lock:
            self._objects.pop(key, None)

    def replace(self, objects: Dict[ObjectKey, Dict]) -> List[ObjectKey]:
        """Swap in a full listing; return keys that disappeared."""
        with self._lock:
            removed = [key for key in self._objects if key not in objects]
            self._objects = dict(objects)
        self._synced.set()
        return removed

    def wait_for_sync(self, timeout: float) -> bool:
        return self._synced.wait(timeout)


class WatchManager:
    """
    Lists and watches one custom resource kind and dispatches reconciles.

    The reconciler is any object with a reconcile(key: ObjectKey) method.
    It may also provide tracked_keys(); those keys are reconciled on every
    relist even when the cluster no longer lists them.
    """

    def __init__(self,
                 custom_api: client.CustomObjectsApi,
                 kind: ResourceKind,
                 namespace: str,
                 reconciler,
                 field_selector: Optional[str] = None):
        """
        Initialize WatchManager.

        Args:
            custom_api: Kubernetes CustomObjectsApi client
            kind: Custom resource kind to watch
            namespace: Namespace to watch. Empty string = all namespaces.
            reconciler: Object whose reconcile(key) is called on changes
            field_selector: Optional server-side field selector
        """
        if reconciler is None or not callable(
                getattr(reconciler, 'reconcile', None)):
            raise ValueError("reconciler must provide reconcile(key)")

        self.custom_api = custom_api
        self.kind = kind
        self.namespace = namespace
        self.reconciler = reconciler
        self.field_selector = field_selector
        self.cache = ObjectCache()

        self._watch: Optional[watch.Watch] = None
        self._fatal_error: Optional[ClusterError] = None
        self._run_error: Optional[Exception] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, stop_event: threading.Event) -> None:
        """
        Run the manager until stop_event is set.

        The initial list happens on the caller's thread so that a kind that
        is not served, or an unreachable API server, is raised here.
        Returns None on clean shutdown. If the watch thread dies, its error
        is raised here.
        """
        logger.info(f"[WATCH] Starting {self.kind.kind} manager "
                    f"(namespace={self.namespace or '<all>'}, "
                    f"selector={self.field_selector})")

        resource_version = self._relist()

        worker = threading.Thread(target=self._watch_loop,
                                  args=(stop_event, resource_version),
                                  name=f"{self.kind.plural}-watch",
                                  daemon=True)
        worker.start()

        while not stop_event.wait(constants.MANAGER_POLL_INTERVAL):
            error = self._fatal_error or self._run_error
            if error is not None:
                self._stop_watch()
                worker.join(timeout=constants.WATCH_STOP_TIMEOUT)
                raise error

        logger.info(f"[WATCH] Stopping {self.kind.kind} manager...")
        self._stop_watch()
        worker.join(timeout=constants.WATCH_STOP_TIMEOUT)
        logger.info(f"[WATCH] {self.kind.kind} manager stopped")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _list_kwargs(self) -> Dict:
        kwargs = {
            'group': self.kind.group,
            'version': self.kind.version,
            'plural': self.kind.plural,
        }
        if self.namespace:
            kwargs['namespace'] = self.namespace
        if self.field_selector:
            kwargs['field_selector'] = self.field_selector
        return kwargs

    def _list_func(self):
        if self.namespace:
            return self.custom_api.list_namespaced_custom_object
        return self.custom_api.list_cluster_custom_object

    def _list(self) -> Tuple[Dict[ObjectKey, Dict], str]:
        context = f"listing {self.kind.kind}"
        try:
            resp = self._list_func()(**self._list_kwargs())
        except client.exceptions.ApiException as e:
            raise from_api_exception(e, context) from e
        except urllib3.exceptions.HTTPError as e:
            raise TransientError(f"{context}: {e}") from e

        objects = {
            ObjectKey.from_object(obj): obj
            for obj in resp.get('items') or []
        }
        resource_version = (resp.get('metadata') or {}).get(
            'resourceVersion', '')
        return objects, resource_version

    def _relist(self) -> str:
        """Refresh the cache from a full list and reconcile every key."""
        objects, resource_version = self._list()
        removed = self.cache.replace(objects)
        logger.info(f"[SYNC] {self.kind.kind} synced: {len(objects)} objects")
        keys = list(objects) + removed
        # Keys the reconciler still holds state for but the cluster no
        # longer lists (e.g. a delete that failed on a previous pass)
        tracked_keys = getattr(self.reconciler, 'tracked_keys', None)
        if callable(tracked_keys):
            keys += [key for key in tracked_keys() if key not in keys]
        for key in keys:
            self._dispatch(key)
        return resource_version

    def _dispatch(self, key: ObjectKey) -> None:
        try:
            self.reconciler.reconcile(key)
        except Exception as e:
            logger.error(
                f"[RECONCILE] {self.kind.kind} {key} failed: {e}. "
                "Retrying on next resync",
                exc_info=True)

    def _handle_event(self, event: Dict) -> Optional[str]:
        """Apply one watch event to the cache; return its resourceVersion."""
        event_type = event.get('type')
        obj = event.get('object') or {}

        if event_type == 'ERROR':
            if obj.get('code') == 410:
                raise _ResourceExpired(obj.get('message', ''))
            raise TransientError(
                f"watch error for {self.kind.kind}: {obj.get('message', obj)}",
                status=obj.get('code'))

        resource_version = (obj.get('metadata') or {}).get('resourceVersion')
        if event_type == 'BOOKMARK':
            return resource_version

        key = ObjectKey.from_object(obj)
        logger.debug(f"[WATCH] Received {event_type} event for "
                     f"{self.kind.kind} {key}")

        if event_type in ('ADDED', 'MODIFIED'):
            self.cache.put(key, obj)
        elif event_type == 'DELETED':
            self.cache.delete(key)
        else:
            logger.warning(f"[WATCH] Ignoring unknown event type {event_type}")
            return resource_version

        self._dispatch(key)
        return resource_version

    def _stream(self, resource_version: str):
        self._watch = watch.Watch()
        return self._watch.stream(self._list_func(),
                                  resource_version=resource_version,
                                  timeout_seconds=constants.WATCH_RESYNC_PERIOD,
                                  **self._list_kwargs())

    def _watch_loop(self, stop_event: threading.Event,
                    resource_version: Optional[str]) -> None:
        """Watch loop with relist on expiry and backoff on errors"""
        retry_delay = constants.WATCH_RETRY_DELAY

        while not stop_event.is_set():
            try:
                if resource_version is None:
                    resource_version = self._relist()

                for event in self._stream(resource_version):
                    if stop_event.is_set():
                        break
                    resource_version = self._handle_event(
                        event) or resource_version

                # Stream ended at the resync timeout; relist and reconcile all
                resource_version = None
                retry_delay = constants.WATCH_RETRY_DELAY

            except _ResourceExpired:
                logger.warning(f"[WATCH] {self.kind.kind} resource version "
                               "expired (410), resyncing...")
                resource_version = None

            except client.exceptions.ApiException as e:
                if e.status == 410:
                    logger.warning(f"[WATCH] {self.kind.kind} resource version "
                                   "expired (410), resyncing...")
                    resource_version = None
                    continue
                error = from_api_exception(e, f"watching {self.kind.kind}")
                if isinstance(error, KindUndefinedError):
                    self._fatal_error = error
                    return
                logger.error(f"[WATCH] API error in {self.kind.kind} watch: "
                             f"{error}. Reconnecting in {retry_delay:.0f}s...")
                stop_event.wait(retry_delay)
                retry_delay = min(retry_delay * 2,
                                  constants.WATCH_MAX_RETRY_DELAY)

            except KindUndefinedError as e:
                self._fatal_error = e
                return

            except (ClusterError, urllib3.exceptions.HTTPError) as e:
                logger.error(f"[WATCH] Error in {self.kind.kind} watch: {e}. "
                             f"Reconnecting in {retry_delay:.0f}s...")
                stop_event.wait(retry_delay)
                retry_delay = min(retry_delay * 2,
                                  constants.WATCH_MAX_RETRY_DELAY)

            except Exception as e:
                logger.error(
                    f"[WATCH] Unexpected error in {self.kind.kind} watch: {e}",
                    exc_info=True)
                self._run_error = e
                return

    def _stop_watch(self) -> None:
        if self._watch is not None:
            self._watch.stop()


class CachedClient:
    """Reads from a WatchManager's cache, writes through to the API server"""

    def __init__(self, manager: WatchManager,
                 custom_api: client.CustomObjectsApi):
        self.manager = manager
        self.custom_api = custom_api

    @property
    def kind(self) -> ResourceKind:
        return self.manager.kind

    def get(self, key: ObjectKey) -> Dict:
        """
        Return a copy of the cached object.

        Waits for the manager's first list; raises TransientError if it does
        not complete in time and NotFoundError if the key is not cached.
        """
        if not self.manager.cache.wait_for_sync(constants.CACHE_SYNC_TIMEOUT):
            raise TransientError(
                f"{self.kind.kind} cache not synced after "
                f"{constants.CACHE_SYNC_TIMEOUT}s")
        obj = self.manager.cache.get(key)
        if obj is None:
            raise NotFoundError(f"{self.kind.kind} {key} not found",
                                status=404)
        return obj

    def update(self, obj: Dict) -> Dict:
        """
        Replace obj on the API server.

        The object's metadata.resourceVersion makes the write conditional; a
        concurrent writer surfaces as ConflictError.
        """
        key = ObjectKey.from_object(obj)
        context = f"updating {self.kind.kind} {key}"
        try:
            updated = self.custom_api.replace_namespaced_custom_object(
                group=self.kind.group,
                version=self.kind.version,
                namespace=key.namespace,
                plural=self.kind.plural,
                name=key.name,
                body=obj)
        except client.exceptions.ApiException as e:
            raise from_api_exception(e, context) from e
        except urllib3.exceptions.HTTPError as e:
            raise TransientError(f"{context}: {e}") from e

        self.manager.cache.put(key, updated)
        return copy.deepcopy(updated)
