import base64
import binascii
import logging
import threading
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
import redis
from django.conf import settings
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import Error as GoogleApiError

from mediaforge.errors import AuthExchangeError, AuthRequiredError, InvalidInputError
from .token_store import CredentialBundle, TokenStore

logger = logging.getLogger(__name__)

AUTH_URI = 'https://accounts.google.com/o/oauth2/v2/auth'
TOKEN_URI = 'https://oauth2.googleapis.com/token'
SCOPES = [
    'https://www.googleapis.com/auth/youtube',
    'https://www.googleapis.com/auth/youtube.upload',
    'https://www.googleapis.com/auth/youtube.readonly',
    'https://www.googleapis.com/auth/yt-analytics.readonly',
    'https://www.googleapis.com/auth/yt-analytics-monetary.readonly',
]
DEFAULT_TOKEN_TTL = 3600


@dataclass
class AuthorizedClient:
    youtube: Any
    credentials: Credentials
    user_id: str
    channel_id: str
    channel_name: str


def _as_utc(value):
    if value is None:
        return None
    if getattr(value, 'tzinfo', None) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class YouTubeAuthManager:
    """Authorization-code flow and credential lifecycle for YouTube.

    Bundles live in the token store keyed by user id. Access tokens within
    ``YOUTUBE_TOKEN_REFRESH_HORIZON`` seconds of expiry are refreshed before a
    client is handed out; concurrent refreshes for the same user inside one
    process are collapsed behind a per-user lock.
    """

    # entries vanish once no caller holds the lock
    _refresh_locks = weakref.WeakValueDictionary()
    _registry_lock = threading.Lock()

    def __init__(self, store=None, http_client=None):
        self.store = store or TokenStore()
        self._client = http_client or httpx.Client(timeout=30)
        self.client_id = settings.GOOGLE_CLIENT_ID
        self.client_secret = settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = settings.YOUTUBE_PUBLIC_REDIRECT_URL or settings.YOUTUBE_REDIRECT_URL
        self.refresh_horizon = settings.YOUTUBE_TOKEN_REFRESH_HORIZON

    @classmethod
    def _lock_for(cls, user_id):
        key = str(user_id)
        with cls._registry_lock:
            lock = cls._refresh_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                cls._refresh_locks[key] = lock
            return lock

    @staticmethod
    def encode_state(user_id):
        return base64.b64encode(str(user_id).encode()).decode()

    @staticmethod
    def decode_state(state):
        try:
            user_id = base64.b64decode(state.encode(), validate=True).decode()
        except (AttributeError, binascii.Error, UnicodeDecodeError):
            raise InvalidInputError('Invalid OAuth state.')
        if not user_id:
            raise InvalidInputError('Invalid OAuth state.')
        return user_id

    def get_authorization_url(self, user_id=None):
        params = {
            'client_id': self.client_id,
            'redirect_uri': self.redirect_uri,
            'response_type': 'code',
            'scope': ' '.join(SCOPES),
            'access_type': 'offline',
            'include_granted_scopes': 'true',
            'prompt': 'consent',
        }
        if user_id is not None:
            params['state'] = self.encode_state(user_id)
        return f"{AUTH_URI}?{urlencode(params)}"

    def exchange_code(self, code, user_id):
        if not code:
            raise InvalidInputError('Authorization code is required.')
        tokens = self._exchange(code)
        access_token = tokens.get('access_token')
        if not access_token:
            raise AuthExchangeError(AuthExchangeError.EXCHANGE_REJECTED, 'Token response did not include an access token.')
        expires_in = int(tokens.get('expires_in') or DEFAULT_TOKEN_TTL)
        bundle = CredentialBundle(
            access_token=access_token,
            refresh_token=tokens.get('refresh_token') or '',
            expiry=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        )
        bundle.channel_id, bundle.channel_name = self._lookup_channel(self._credentials(bundle))
        try:
            self.store.set(user_id, bundle, expires_in)
        except redis.RedisError as e:
            logger.error("Could not store YouTube credentials for user %s: %s", user_id, e)
            raise AuthExchangeError(AuthExchangeError.CACHE_UNAVAILABLE, 'Could not store YouTube credentials.')
        logger.info("Connected YouTube channel %s for user %s", bundle.channel_id, user_id)
        return bundle.channel_id, bundle.channel_name

    def get_client_for_user(self, user_id):
        bundle = self.store.get(user_id)
        if bundle is None:
            raise AuthRequiredError('YouTube authentication required. Connect your channel first.')
        if bundle.expires_within(self.refresh_horizon):
            bundle = self._refresh(user_id)
        credentials = self._credentials(bundle)
        youtube = build('youtube', 'v3', credentials=credentials, cache_discovery=False)
        return AuthorizedClient(
            youtube=youtube,
            credentials=credentials,
            user_id=str(user_id),
            channel_id=bundle.channel_id,
            channel_name=bundle.channel_name,
        )

    def _exchange(self, code):
        data = {
            'code': code,
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'redirect_uri': self.redirect_uri,
            'grant_type': 'authorization_code',
        }
        try:
            res = self._client.post(TOKEN_URI, data=data, headers={'accept': 'application/json'})
        except httpx.RequestError as e:
            logger.warning("Token endpoint unreachable: %s", e)
            raise AuthExchangeError(AuthExchangeError.UPSTREAM_UNAVAILABLE, 'Google token endpoint is unreachable.')
        if res.status_code >= 500:
            raise AuthExchangeError(AuthExchangeError.UPSTREAM_UNAVAILABLE, f"Google token endpoint returned {res.status_code}.")
        try:
            payload = res.json()
        except ValueError:
            payload = {}
        if res.status_code >= 400:
            error = payload.get('error') if isinstance(payload, dict) else None
            logger.warning("Authorization code exchange rejected: %s", error or res.status_code)
            if error == 'invalid_grant':
                raise AuthExchangeError(AuthExchangeError.INVALID_GRANT, 'Authorization code is invalid or expired.')
            raise AuthExchangeError(AuthExchangeError.EXCHANGE_REJECTED, 'Google rejected the authorization code.')
        if not isinstance(payload, dict):
            raise AuthExchangeError(AuthExchangeError.EXCHANGE_REJECTED, 'Token response was not a JSON object.')
        return payload

    def _lookup_channel(self, credentials):
        try:
            youtube = build('youtube', 'v3', credentials=credentials, cache_discovery=False)
            response = youtube.channels().list(part='snippet', mine=True).execute()
        except (GoogleApiError, GoogleAuthError, OSError) as e:
            logger.warning("YouTube channel lookup failed: %s", e)
            raise AuthExchangeError(AuthExchangeError.IDENTITY_LOOKUP_FAILED, 'Could not look up the YouTube channel.')
        items = response.get('items') or []
        if not items:
            raise AuthExchangeError(AuthExchangeError.IDENTITY_LOOKUP_FAILED, 'No YouTube channel found for this account.')
        channel = items[0]
        return channel['id'], channel.get('snippet', {}).get('title', '')

    def _credentials(self, bundle):
        expiry = _as_utc(bundle.expiry)
        return Credentials(
            token=bundle.access_token,
            refresh_token=bundle.refresh_token or None,
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=SCOPES,
            # google-auth compares expiry against naive UTC
            expiry=expiry.replace(tzinfo=None) if expiry else None,
        )

    def _refresh(self, user_id):
        with self._lock_for(user_id):
            bundle = self.store.get(user_id)
            if bundle is None:
                raise AuthRequiredError('YouTube authentication required. Connect your channel first.')
            if not bundle.expires_within(self.refresh_horizon):
                return bundle
            if not bundle.refresh_token:
                self.store.invalidate(user_id)
                raise AuthRequiredError('YouTube authorization expired. Reconnect your channel.')
            credentials = self._credentials(bundle)
            try:
                credentials.refresh(Request())
            except GoogleAuthError as e:
                logger.warning("Refreshing YouTube token for user %s failed: %s", user_id, e)
                self.store.invalidate(user_id)
                raise AuthRequiredError('YouTube authorization expired. Reconnect your channel.')
            now = datetime.now(timezone.utc)
            expiry = _as_utc(credentials.expiry) or now + timedelta(seconds=DEFAULT_TOKEN_TTL)
            refreshed = CredentialBundle(
                access_token=credentials.token,
                refresh_token=credentials.refresh_token or bundle.refresh_token,
                expiry=expiry,
                channel_id=bundle.channel_id,
                channel_name=bundle.channel_name,
            )
            self.store.set(user_id, refreshed, (expiry - now).total_seconds())
            logger.info("Refreshed YouTube token for user %s", user_id)
            return refreshed
