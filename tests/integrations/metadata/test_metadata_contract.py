from __future__ import annotations

import pytest

from gamevault_backend.integrations.metadata import contract as contract_mod
from gamevault_backend.integrations.metadata.contract import fetch_games_sequentially
from gamevault_backend.integrations.metadata.http import PermanentProviderError, TransientProviderError
from gamevault_backend.models.metadata import (
    GameMetadata,
    ProviderCapabilities,
    ProviderManifest,
    RateLimitConfig,
)


class _ScriptedProvider:
    def __init__(self, outcomes: dict[str, object], config: RateLimitConfig) -> None:
        self._outcomes = outcomes
        self._config = config
        self.requested: list[str] = []

    def get_manifest(self) -> ProviderManifest:
        return ProviderManifest(id="scripted", name="Scripted")

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities()

    def get_rate_limit_config(self) -> RateLimitConfig:
        return self._config

    def get_game_metadata(self, external_id: str, api_key: str | None = None) -> GameMetadata | None:
        self.requested.append(external_id)
        outcome = self._outcomes.get(external_id, "fail")
        if outcome == "fail":
            raise TransientProviderError("rate limited", provider_id="scripted", status_code=429)
        if outcome == "bad":
            raise PermanentProviderError("garbage", provider_id="scripted")
        if outcome is None:
            return None
        return GameMetadata(external_id=external_id, name=str(outcome))


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr(contract_mod.time, "sleep", lambda seconds: recorded.append(seconds))
    return recorded


def test_always_failing_provider_stops_at_threshold() -> None:
    provider = _ScriptedProvider({}, RateLimitConfig(max_consecutive_errors=3, max_batch_size=2))
    result = fetch_games_sequentially(provider, [str(i) for i in range(20)])

    assert result.aborted is True
    assert provider.requested == ["0", "1", "2"]
    assert result.failed == ["0", "1", "2"]
    assert result.items == []


def test_success_and_misses_reset_consecutive_errors() -> None:
    outcomes = {"a": "fail", "b": "fail", "c": None, "d": "fail", "e": "bad", "f": "Game F"}
    provider = _ScriptedProvider(outcomes, RateLimitConfig(max_consecutive_errors=3))
    result = fetch_games_sequentially(provider, ["a", "b", "c", "d", "e", "f"])

    assert result.aborted is False
    assert [m.external_id for m in result.items] == ["f"]
    assert result.missing == ["c"]
    assert result.failed == ["a", "b", "d", "e"]


def test_caps_input_and_sleeps_between_batches(_no_sleep: list[float]) -> None:
    outcomes = {str(i): f"Game {i}" for i in range(10)}
    config = RateLimitConfig(max_batch_size=2, batch_delay_ms=250, max_games_per_sync=5)
    provider = _ScriptedProvider(outcomes, config)

    result = fetch_games_sequentially(provider, [" 0 ", "1", "", "2", "3", "4", "5", "6"])

    assert provider.requested == ["0", "1", "2", "3", "4"]
    assert len(result.items) == 5
    assert _no_sleep == [0.25, 0.25]
