import json
import logging
import os
import threading
from collections.abc import MutableMapping
from typing import Any, Callable, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


def empty_document() -> Dict[str, Any]:
    return {'users': [], 'items': [], 'attempts': {}}


class CloudStore:
    """
    Client for the shared JSON document that acts as the whole database.

    The document holds two lists, ``users`` and ``items``, and the
    ``attempts`` map of failed ownership claims keyed by user and item.
    Every write is a whole-document read-modify-write: fetch the latest
    copy, change it, PUT it back. A local cache file mirrors the last known
    document and is served whenever the cloud cannot be reached. With no
    ``api_url`` the cache file is the database.
    """

    def __init__(self, api_url: Optional[str], cache_path: str, timeout: float = 10,
                 session: Optional[requests.Session] = None):
        self.api_url = api_url or None
        self.cache_path = cache_path
        self.timeout = timeout
        self.session = session or requests.Session()
        self._lock = threading.Lock()

    @property
    def mode(self) -> str:
        return 'cloud' if self.api_url else 'offline'

    # -------------------------
    # Local cache
    # -------------------------
    def _read_cache(self) -> Dict[str, Any]:
        try:
            with open(self.cache_path, 'r', encoding='utf-8') as f:
                return self._normalize(json.load(f))
        except FileNotFoundError:
            return empty_document()
        except (OSError, ValueError) as e:
            logger.warning("Local cache unreadable (%s), starting empty", e)
            return empty_document()

    def _write_cache(self, data):
        directory = os.path.dirname(self.cache_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = self.cache_path + '.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f)
        os.replace(tmp_path, self.cache_path)

    @staticmethod
    def _normalize(data) -> Dict[str, Any]:
        if not isinstance(data, dict):
            return empty_document()
        return {
            'users': data.get('users') or [],
            'items': data.get('items') or [],
            'attempts': data.get('attempts') or {},
        }

    # -------------------------
    # Whole document
    # -------------------------
    def fetch_all(self) -> Dict[str, Any]:
        """Fetch the shared document, falling back to the local cache."""
        if not self.api_url:
            return self._read_cache()

        try:
            response = self.session.get(
                self.api_url,
                headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return self._normalize(response.json())
        except (requests.RequestException, ValueError) as e:
            logger.warning("Using local cache as cloud is unreachable: %s", e)
            return self._read_cache()

    def sync(self, data) -> bool:
        """
        Push the whole document to the cloud.

        The local cache is always written first. Returns False when the
        cloud update failed; the change then only lives in the cache.
        """
        data = self._normalize(data)
        self._write_cache(data)

        if not self.api_url:
            return True

        try:
            response = self.session.put(
                self.api_url,
                json=data,
                headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.error("Data could not be synced to cloud: %s", e)
            return False

    def _mutate(self, change: Callable[[Dict[str, Any]], Any]):
        with self._lock:
            data = self.fetch_all()
            result = change(data)
            if result is not False:
                self.sync(data)
            return result

    # -------------------------
    # Users
    # -------------------------
    def get_users(self) -> List[Dict[str, Any]]:
        return self.fetch_all()['users']

    def find_user(self, email: str) -> Optional[Dict[str, Any]]:
        email = (email or '').lower()
        for user in self.get_users():
            if user.get('email', '').lower() == email:
                return user
        return None

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        user_id = (user_id or '').upper()
        for user in self.get_users():
            if user.get('id', '').upper() == user_id:
                return user
        return None

    def save_user(self, user) -> bool:
        """Add a user unless the email or the user id is already registered."""
        def change(data):
            email = user['email'].lower()
            user_id = user['id'].upper()
            if any(u.get('email', '').lower() == email or u.get('id', '').upper() == user_id
                   for u in data['users']):
                return False
            data['users'].append(user)
            return True

        return self._mutate(change)

    # -------------------------
    # Items
    # -------------------------
    def get_items(self) -> List[Dict[str, Any]]:
        return self.fetch_all()['items']

    def get_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        for item in self.get_items():
            if item.get('id') == item_id:
                return item
        return None

    def save_item(self, item):
        def change(data):
            data['items'] = [item] + data['items']

        self._mutate(change)

    def update_item(self, updated_item):
        def change(data):
            data['items'] = [updated_item if it.get('id') == updated_item['id'] else it
                             for it in data['items']]

        self._mutate(change)

    def modify_item(self, item_id: str, modifier: Callable[[Dict[str, Any]], None]) -> Optional[Dict[str, Any]]:
        """Apply ``modifier`` to the freshest copy of an item and save it."""
        def change(data):
            for item in data['items']:
                if item.get('id') == item_id:
                    modifier(item)
                    return item
            return False

        result = self._mutate(change)
        return result or None

    def delete_item(self, item_id: str) -> bool:
        def change(data):
            remaining = [it for it in data['items'] if it.get('id') != item_id]
            if len(remaining) == len(data['items']):
                return False
            data['items'] = remaining
            data['attempts'] = {key: log for key, log in data['attempts'].items()
                                if not key.endswith(f":{item_id}")}
            return True

        return self._mutate(change)

    # -------------------------
    # Claim attempts
    # -------------------------
    def attempt_logs(self) -> 'AttemptLogs':
        return AttemptLogs(self)


class AttemptLogs(MutableMapping):
    """Live view of the ``attempts`` map; every write goes to the shared document."""

    def __init__(self, store: CloudStore):
        self.store = store

    def _logs(self) -> Dict[str, Any]:
        return self.store.fetch_all()['attempts']

    def __getitem__(self, key):
        return self._logs()[key]

    def __setitem__(self, key, log):
        def change(data):
            data['attempts'][key] = log

        self.store._mutate(change)

    def __delitem__(self, key):
        def change(data):
            if key not in data['attempts']:
                return False
            del data['attempts'][key]
            return True

        if not self.store._mutate(change):
            raise KeyError(key)

    def __iter__(self):
        return iter(self._logs())

    def __len__(self):
        return len(self._logs())
