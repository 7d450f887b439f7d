"""Per-user OAuth credential bundles kept in a Django cache alias."""
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from django.core.cache import caches
from django.core.cache.backends.base import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


@dataclass
class CredentialBundle:
    access_token: str
    refresh_token: str = ''
    expiry: datetime = None
    channel_id: str = ''
    channel_name: str = ''

    def expires_within(self, seconds, now=None):
        if self.expiry is None:
            return True
        now = now or datetime.now(timezone.utc)
        return (self.expiry - now).total_seconds() <= seconds

    def to_json(self):
        data = asdict(self)
        data['expiry'] = self.expiry.isoformat() if self.expiry else None
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw):
        data = json.loads(raw)
        expiry = data.get('expiry')
        if expiry:
            expiry = datetime.fromisoformat(expiry)
            if expiry.tzinfo is None:
                expiry = expiry.replace(tzinfo=timezone.utc)
        data['expiry'] = expiry
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class CacheNamespace:
    alias: str
    prefix: str

    @property
    def cache(self):
        return caches[self.alias]

    def key(self, *parts):
        return ':'.join([self.prefix, *[str(p) for p in parts]])


OAUTH = CacheNamespace('oauth', 'youtube:oauth')
STATS = CacheNamespace('stats', 'youtube:stats')
ANALYTICS = CacheNamespace('analytics', 'youtube:analytics')


class TokenStore:
    def __init__(self, namespace=OAUTH):
        self.namespace = namespace

    def key(self, user_id):
        return self.namespace.key(user_id)

    def get(self, user_id):
        raw = self.namespace.cache.get(self.key(user_id))
        if raw is None:
            return None
        try:
            return CredentialBundle.from_json(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Discarding unreadable credential bundle for user %s: %s", user_id, e)
            self.invalidate(user_id)
            return None

    def set(self, user_id, bundle, ttl):
        if ttl is not None and ttl <= 0:
            self.invalidate(user_id)
            return
        timeout = DEFAULT_TIMEOUT if ttl is None else int(ttl)
        self.namespace.cache.set(self.key(user_id), bundle.to_json(), timeout=timeout)

    def invalidate(self, user_id):
        self.namespace.cache.delete(self.key(user_id))
