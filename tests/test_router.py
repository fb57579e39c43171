"""Tests for ProviderRouter."""

import logging
from unittest.mock import MagicMock

import pytest

from clipchain.errors import RoutingError
from clipchain.services.providers.replicate_video import ReplicateBackend
from clipchain.services.providers.veo_video import VeoBackend
from clipchain.services.router import ProviderRouter


@pytest.fixture
def router():
    veo = VeoBackend(MagicMock(), api_key="k")
    replicate = ReplicateBackend(MagicMock())
    return ProviderRouter([veo, replicate], default_model="veo-3.1-generate-preview")


class TestRoute:

    def test_namespaced_model_goes_to_replicate(self, router):
        assert router.route("acme/fast-model").name == "replicate"

    def test_veo_alias_goes_to_veo(self, router):
        assert router.route("veo-3.1").name == "veo"

    def test_gemini_prefix_goes_to_veo(self, router):
        assert router.route("gemini-video").name == "veo"

    def test_empty_model_rejected(self, router):
        with pytest.raises(RoutingError):
            router.route("")

    def test_whitespace_model_rejected(self, router):
        with pytest.raises(RoutingError):
            router.route("   ")

    def test_unknown_model_names_configured_backends(self, router):
        with pytest.raises(RoutingError) as exc_info:
            router.route("sora-2")
        assert "veo" in str(exc_info.value)
        assert "replicate" in str(exc_info.value)

    def test_veo_prefixed_slash_model_stays_on_veo(self, router):
        assert router.route("veo/custom").name == "veo"

    def test_route_is_deterministic(self, router):
        assert router.route("acme/fast-model") is router.route("acme/fast-model")


def test_resolve_default_logs(router, caplog):
    with caplog.at_level(logging.INFO):
        backend, model = router.resolve(None)
    assert backend.name == "veo"
    assert model == "veo-3.1-generate-preview"
    assert "default" in caplog.text


def test_missing_backend_fails_loudly():
    router = ProviderRouter([VeoBackend(MagicMock(), api_key="k")], default_model="veo-3.1")
    with pytest.raises(RoutingError):
        router.route("minimax/video-01")
