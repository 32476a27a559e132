"""
Tests for the Google authorization URL builder.
"""

from urllib.parse import parse_qs, urlparse

import pytest

from auth.errors import ProviderDisabledError
from config.settings import config
from oauth.authorization import build_authorization_url
from utils.schemas import PublicProviderConfig

REDIRECT = "http://localhost:3000/login/google/callback"


class TestBuildAuthorizationUrl:
    def test_contains_oauth2_parameters(self):
        cfg = PublicProviderConfig(enabled=True, client_id="abc.apps.googleusercontent.com")
        url = build_authorization_url(cfg, redirect_uri=REDIRECT, state="S1")

        parsed = urlparse(url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == config.google_auth_url
        query = parse_qs(parsed.query)
        assert query["client_id"] == ["abc.apps.googleusercontent.com"]
        assert query["redirect_uri"] == [REDIRECT]
        assert query["response_type"] == ["code"]
        assert query["scope"] == ["openid email profile"]
        assert query["state"] == ["S1"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]

    def test_deterministic(self):
        cfg = PublicProviderConfig(enabled=True, client_id="abc")
        first = build_authorization_url(cfg, redirect_uri=REDIRECT, state="same")
        second = build_authorization_url(cfg, redirect_uri=REDIRECT, state="same")
        assert first == second

    def test_state_is_round_tripped_unchanged(self):
        cfg = PublicProviderConfig(enabled=True, client_id="abc")
        state = "a+b/c=d&e"
        url = build_authorization_url(cfg, redirect_uri=REDIRECT, state=state)
        assert parse_qs(urlparse(url).query)["state"] == [state]

    @pytest.mark.parametrize(
        "cfg",
        [
            PublicProviderConfig(enabled=False, client_id="abc"),
            PublicProviderConfig(enabled=True, client_id=None),
            PublicProviderConfig(enabled=True, client_id=""),
        ],
    )
    def test_disabled_or_missing_client_id(self, cfg):
        with pytest.raises(ProviderDisabledError) as exc_info:
            build_authorization_url(cfg, redirect_uri=REDIRECT, state="S1")
        assert exc_info.value.code == "PROVIDER_DISABLED"
