"""Tests for authentication attempt state."""

import pytest

from conftest import FakeCache
from idm.services.state import StateCorrelator, generate_state


@pytest.fixture
def correlator(state_cache: FakeCache, identity_settings) -> StateCorrelator:
    return StateCorrelator(state_cache, identity_settings)


class TestBeginAuthAttempt:
    async def test_state_round_trips_through_cache(self, correlator, state_cache) -> None:
        state, record = await correlator.begin_auth_attempt(
            policy_name="b2c_1a_signup",
            journey="signup",
            force_login=True,
            back_to_path="/account",
        )

        assert state_cache.data[state] == {
            "policy_name": "b2c_1a_signup",
            "journey": "signup",
            "force_login": True,
            "back_to_path": "/account",
        }

        resumed = await correlator.resume(state)
        assert resumed == record

    async def test_defaults_come_from_settings(self, correlator) -> None:
        _, record = await correlator.begin_auth_attempt()

        assert record.policy_name == "b2c_1a_signin"
        assert record.journey == "default"
        assert record.force_login is False
        assert record.back_to_path is None

    @pytest.mark.parametrize(
        "flag,expected",
        [("yes", True), (True, True), ("no", False), ("true", False), (None, False), (False, False)],
    )
    async def test_force_login_flag(self, correlator, flag, expected) -> None:
        _, record = await correlator.begin_auth_attempt(force_login=flag)
        assert record.force_login is expected

    async def test_extra_fields_take_precedence(self, correlator, state_cache) -> None:
        state, record = await correlator.begin_auth_attempt(
            policy_name="b2c_1a_signin",
            extra={"policy_name": "b2c_1a_password_reset", "reset_origin": "/account"},
        )

        assert record.policy_name == "b2c_1a_password_reset"
        assert state_cache.data[state]["reset_origin"] == "/account"
        assert state_cache.data[state]["journey"] == "default"

    async def test_explicit_state_is_used(self, correlator, state_cache) -> None:
        state, _ = await correlator.begin_auth_attempt(state="known-state")

        assert state == "known-state"
        assert "known-state" in state_cache.data

    async def test_generated_states_are_distinct(self, correlator, state_cache) -> None:
        first, _ = await correlator.begin_auth_attempt()
        second, _ = await correlator.begin_auth_attempt()

        assert first != second
        assert len(state_cache.data) == 2

    async def test_cache_failure_propagates(self, correlator, state_cache) -> None:
        state_cache.error = ConnectionError("cache unavailable")

        with pytest.raises(ConnectionError):
            await correlator.begin_auth_attempt()


class TestResume:
    async def test_unknown_state(self, correlator) -> None:
        assert await correlator.resume("never-issued") is None

    async def test_empty_state(self, correlator) -> None:
        assert await correlator.resume(None) is None
        assert await correlator.resume("") is None

    async def test_discarded_state_cannot_be_resumed(self, correlator) -> None:
        state, _ = await correlator.begin_auth_attempt()

        await correlator.discard(state)

        assert await correlator.resume(state) is None


def test_generate_state_is_unique_and_url_safe() -> None:
    states = {generate_state() for _ in range(10000)}

    assert len(states) == 10000
    for state in list(states)[:100]:
        assert len(state) >= 22
        assert all(c.isalnum() or c in "-_" for c in state)
