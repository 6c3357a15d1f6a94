from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock

import requests
from django.core.cache.backends.locmem import LocMemCache
from django.test import SimpleTestCase, override_settings

from core.phonepe_integration.exceptions import AuthError, ConfigurationError, GatewayError, GatewayTimeout
from core.phonepe_integration.token_manager import OAUTH_URLS, OAuthToken, PhonePeTokenCache

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=dt_timezone.utc)


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


def token_response(access_token="token-1", expires_in=3600, status_code=200, body=None):
    response = mock.Mock(status_code=status_code, text="")
    if body is None:
        body = {"access_token": access_token, "expires_at": int(NOW.timestamp()) + expires_in}
    response.json.return_value = body
    return response


@override_settings(PHONEPE_CLIENT_ID="TEST_CLIENT", PHONEPE_CLIENT_SECRET="test-secret", PHONEPE_ENV="sandbox")
class PhonePeTokenCacheTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.token_cache = PhonePeTokenCache(cache=LocMemCache(f"token-{self.id()}", {}), clock=self.clock)
        patcher = mock.patch("core.phonepe_integration.token_manager.requests.post")
        self.post = patcher.start()
        self.addCleanup(patcher.stop)

    def test_token_is_requested_once_and_reused(self):
        self.post.return_value = token_response("token-1")

        self.assertEqual(self.token_cache.get_token(), "token-1")
        self.assertEqual(self.token_cache.get_token(), "token-1")

        self.post.assert_called_once()
        url = self.post.call_args.args[0]
        data = self.post.call_args.kwargs["data"]
        self.assertEqual(url, OAUTH_URLS["sandbox"])
        self.assertEqual(data["grant_type"], "client_credentials")
        self.assertEqual(data["client_id"], "TEST_CLIENT")
        self.assertEqual(data["client_version"], "1")

    def test_expired_token_is_refreshed(self):
        self.post.side_effect = [token_response("token-1"), token_response("token-2")]
        self.token_cache.get_token()

        self.clock.now = NOW + timedelta(seconds=3600)

        self.assertEqual(self.token_cache.get_token(), "token-2")
        self.assertEqual(self.post.call_count, 2)

    def test_force_refresh_skips_cache(self):
        self.post.side_effect = [token_response("token-1"), token_response("token-2")]
        self.token_cache.get_token()

        self.assertEqual(self.token_cache.get_token(force_refresh=True), "token-2")

    def test_fallback_expiry_without_expires_at(self):
        self.post.return_value = token_response(body={"access_token": "token-1"})

        token = self.token_cache.refresh()

        self.assertEqual(token.expires_at, NOW + timedelta(seconds=3600))

    def test_invalidate_drops_cached_token(self):
        self.post.return_value = token_response("token-1")
        self.token_cache.get_token()

        self.assertTrue(self.token_cache.invalidate())
        self.assertFalse(self.token_cache.invalidate())
        self.token_cache.get_token()
        self.assertEqual(self.post.call_count, 2)

    @override_settings(PHONEPE_CLIENT_SECRET=None)
    def test_missing_credentials(self):
        with self.assertRaises(ConfigurationError) as ctx:
            self.token_cache.get_token()

        self.assertEqual(ctx.exception.details["missing"], ["PHONEPE_CLIENT_SECRET"])
        self.post.assert_not_called()

    def test_invalid_client_has_actionable_message(self):
        self.post.return_value = token_response(
            status_code=400, body={"code": "INVALID_CLIENT", "message": "Client Not Found"}
        )

        with self.assertRaises(AuthError) as ctx:
            self.token_cache.get_token()

        self.assertEqual(ctx.exception.error_code, "INVALID_CLIENT")
        self.assertIn("PHONEPE_CLIENT_ID", ctx.exception.message)

    def test_other_rejection(self):
        self.post.return_value = token_response(status_code=400, body={"code": "BAD_REQUEST"})

        with self.assertRaises(AuthError) as ctx:
            self.token_cache.get_token()

        self.assertEqual(ctx.exception.message, "Failed to get PhonePe OAuth token")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_server_error_is_a_gateway_error(self):
        self.post.return_value = token_response(status_code=503, body={"message": "Service Unavailable"})

        with self.assertRaises(GatewayError) as ctx:
            self.token_cache.get_token()

        self.assertNotIsInstance(ctx.exception, AuthError)
        self.assertEqual(ctx.exception.status_code, 503)

    def test_non_json_body_is_a_gateway_error(self):
        response = token_response(status_code=200)
        response.json.side_effect = ValueError("No JSON object could be decoded")
        self.post.return_value = response

        with self.assertRaises(GatewayError) as ctx:
            self.token_cache.get_token()

        self.assertEqual(ctx.exception.message, "Invalid OAuth response from PhonePe")
        self.assertEqual(ctx.exception.status_code, 502)

    def test_response_without_access_token(self):
        self.post.return_value = token_response(body={"expires_at": 1})

        with self.assertRaises(AuthError) as ctx:
            self.token_cache.get_token()

        self.assertEqual(ctx.exception.message, "Invalid OAuth response from PhonePe")

    def test_timeout(self):
        self.post.side_effect = requests.exceptions.Timeout()

        with self.assertRaises(GatewayTimeout):
            self.token_cache.get_token()

    @override_settings(PHONEPE_ENV="production")
    def test_production_url(self):
        self.assertEqual(self.token_cache.token_url, OAUTH_URLS["production"])


class OAuthTokenTests(SimpleTestCase):
    def test_valid_strictly_before_expiry(self):
        token = OAuthToken("abc", NOW)

        self.assertTrue(token.is_valid(NOW - timedelta(seconds=1)))
        self.assertFalse(token.is_valid(NOW))
