import base64
import gc
import threading
import time
from datetime import datetime, timedelta, timezone
from unittest import mock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials

from mediaforge.errors import AuthExchangeError, AuthRequiredError, InvalidInputError
from publishing.services.token_store import CredentialBundle, TokenStore
from publishing.services.youtube_auth import YouTubeAuthManager


def token_endpoint(status_code, payload):
    def handler(request):
        return httpx.Response(status_code, json=payload)
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def youtube_api():
    with mock.patch('publishing.services.youtube_auth.build') as build:
        channels = build.return_value.channels.return_value
        channels.list.return_value.execute.return_value = {
            'items': [{'id': 'UC123', 'snippet': {'title': 'Deep Sea Docs'}}],
        }
        yield build


@pytest.fixture
def refresh_calls(monkeypatch):
    calls = []

    def fake_refresh(self, request):
        calls.append(self.refresh_token)
        time.sleep(0.05)
        self.token = f"refreshed-{len(calls)}"
        self.expiry = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)

    monkeypatch.setattr(Credentials, 'refresh', fake_refresh)
    return calls


def store_bundle(user_id, expires_in, refresh_token='rt-1'):
    bundle = CredentialBundle(
        access_token='at-1',
        refresh_token=refresh_token,
        expiry=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        channel_id='UC123',
        channel_name='Deep Sea Docs',
    )
    TokenStore().set(user_id, bundle, 3600)
    return bundle


class TestTokenStore:
    def test_round_trip_keeps_expiry_timezone(self):
        bundle = store_bundle('7', 600)
        loaded = TokenStore().get('7')
        assert loaded == bundle
        assert loaded.expiry.tzinfo is not None

    def test_non_positive_ttl_deletes(self):
        bundle = store_bundle('7', 600)
        TokenStore().set('7', bundle, 0)
        assert TokenStore().get('7') is None

    def test_missing_ttl_uses_cache_default(self):
        bundle = store_bundle('7', 600)
        TokenStore().set('7', bundle, None)
        assert TokenStore().get('7') == bundle

    def test_keys_are_per_user(self):
        store_bundle('7', 600)
        assert TokenStore().get('8') is None
        assert TokenStore().key('7') == 'youtube:oauth:7'


class TestAuthorizationUrl:
    def test_url_carries_scopes_and_state(self, settings):
        settings.GOOGLE_CLIENT_ID = 'client-abc'
        url = YouTubeAuthManager(http_client=token_endpoint(200, {})).get_authorization_url(42)
        query = parse_qs(urlparse(url).query)
        assert query['client_id'] == ['client-abc']
        assert query['access_type'] == ['offline']
        assert 'https://www.googleapis.com/auth/youtube.upload' in query['scope'][0].split(' ')
        assert base64.b64decode(query['state'][0]).decode() == '42'

    def test_public_redirect_wins(self, settings):
        settings.YOUTUBE_PUBLIC_REDIRECT_URL = 'https://app.example.com/api/youtube/callback/'
        url = YouTubeAuthManager(http_client=token_endpoint(200, {})).get_authorization_url()
        assert parse_qs(urlparse(url).query)['redirect_uri'] == ['https://app.example.com/api/youtube/callback/']

    def test_decode_state(self):
        assert YouTubeAuthManager.decode_state(YouTubeAuthManager.encode_state(42)) == '42'
        with pytest.raises(InvalidInputError):
            YouTubeAuthManager.decode_state('***')


class TestExchangeCode:
    def test_expired_code_is_invalid_grant(self, youtube_api):
        auth = YouTubeAuthManager(http_client=token_endpoint(400, {'error': 'invalid_grant'}))
        with pytest.raises(AuthExchangeError) as exc:
            auth.exchange_code('stale-code', '7')
        assert exc.value.reason == AuthExchangeError.INVALID_GRANT
        assert exc.value.status_code == 400
        assert TokenStore().get('7') is None

    def test_other_rejection_is_distinguished(self, youtube_api):
        auth = YouTubeAuthManager(http_client=token_endpoint(401, {'error': 'invalid_client'}))
        with pytest.raises(AuthExchangeError) as exc:
            auth.exchange_code('code', '7')
        assert exc.value.reason == AuthExchangeError.EXCHANGE_REJECTED

    def test_google_outage_is_upstream_unavailable(self, youtube_api):
        auth = YouTubeAuthManager(http_client=token_endpoint(503, {}))
        with pytest.raises(AuthExchangeError) as exc:
            auth.exchange_code('code', '7')
        assert exc.value.reason == AuthExchangeError.UPSTREAM_UNAVAILABLE
        assert exc.value.status_code == 502

    def test_success_stores_bundle_with_identity(self, youtube_api):
        auth = YouTubeAuthManager(http_client=token_endpoint(200, {
            'access_token': 'at-new', 'refresh_token': 'rt-new', 'expires_in': 3599,
        }))
        assert auth.exchange_code('good-code', '7') == ('UC123', 'Deep Sea Docs')
        bundle = TokenStore().get('7')
        assert bundle.access_token == 'at-new'
        assert bundle.refresh_token == 'rt-new'
        assert bundle.channel_id == 'UC123'
        youtube_api.return_value.channels.return_value.list.assert_called_once_with(part='snippet', mine=True)

    def test_account_without_channel(self, youtube_api):
        youtube_api.return_value.channels.return_value.list.return_value.execute.return_value = {'items': []}
        auth = YouTubeAuthManager(http_client=token_endpoint(200, {'access_token': 'at', 'expires_in': 60}))
        with pytest.raises(AuthExchangeError) as exc:
            auth.exchange_code('code', '7')
        assert exc.value.reason == AuthExchangeError.IDENTITY_LOOKUP_FAILED
        assert TokenStore().get('7') is None


class TestClientForUser:
    def test_missing_bundle_requires_auth(self, youtube_api):
        with pytest.raises(AuthRequiredError):
            YouTubeAuthManager(http_client=token_endpoint(200, {})).get_client_for_user('7')

    def test_fresh_token_is_not_refreshed(self, youtube_api, refresh_calls):
        store_bundle('7', 3000)
        auth = YouTubeAuthManager(http_client=token_endpoint(200, {}))
        first = auth.get_client_for_user('7')
        auth.get_client_for_user('7')
        assert refresh_calls == []
        assert first.credentials.token == 'at-1'
        assert first.channel_id == 'UC123'

    def test_near_expiry_refreshes_once(self, youtube_api, refresh_calls):
        store_bundle('7', 60)
        auth = YouTubeAuthManager(http_client=token_endpoint(200, {}))
        client = auth.get_client_for_user('7')
        auth.get_client_for_user('7')
        assert refresh_calls == ['rt-1']
        assert client.credentials.token == 'refreshed-1'
        assert TokenStore().get('7').access_token == 'refreshed-1'

    def test_concurrent_callers_share_one_refresh(self, youtube_api, refresh_calls):
        store_bundle('7', 60)
        auth = YouTubeAuthManager(http_client=token_endpoint(200, {}))
        tokens = []

        def worker():
            tokens.append(auth.get_client_for_user('7').credentials.token)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(refresh_calls) == 1
        assert tokens == ['refreshed-1'] * 4

    def test_refresh_failure_invalidates(self, youtube_api, monkeypatch):
        def failing_refresh(self, request):
            raise RefreshError('invalid_grant: Token has been expired or revoked.')

        monkeypatch.setattr(Credentials, 'refresh', failing_refresh)
        store_bundle('7', 60)
        with pytest.raises(AuthRequiredError):
            YouTubeAuthManager(http_client=token_endpoint(200, {})).get_client_for_user('7')
        assert TokenStore().get('7') is None

    def test_refresh_locks_are_not_retained(self, youtube_api, refresh_calls):
        store_bundle('7', 60)
        YouTubeAuthManager(http_client=token_endpoint(200, {})).get_client_for_user('7')
        gc.collect()
        assert refresh_calls == ['rt-1']
        assert '7' not in YouTubeAuthManager._refresh_locks

    def test_no_refresh_token_requires_auth(self, youtube_api, refresh_calls):
        store_bundle('7', 60, refresh_token='')
        with pytest.raises(AuthRequiredError):
            YouTubeAuthManager(http_client=token_endpoint(200, {})).get_client_for_user('7')
        assert refresh_calls == []
