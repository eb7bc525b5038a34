import pytest

from menuchat.errors import SessionIdentityError
from menuchat.identity import (
    Action,
    ConfirmationState,
    SessionRegistry,
    is_usable,
    new_session_id,
    resolve_identity,
    validate_session_id,
)

PROMPT_ID = "11111111-1111-4111-8111-111111111111"


def _minter(*ids):
    it = iter(ids)
    return lambda: next(it)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


# ── Minting and validation ──────────────────────────────────────


def test_new_session_id_is_uuid4():
    assert validate_session_id(new_session_id())


def test_new_session_ids_are_unique():
    assert len({new_session_id() for _ in range(50)}) == 50


@pytest.mark.parametrize("value", [None, "", "unknown", "not-a-uuid", "11111111-1111-1111-1111-111111111111"])
def test_validate_session_id_rejects(value):
    assert not validate_session_id(value)


def test_is_usable():
    assert is_usable(PROMPT_ID)
    assert not is_usable(None)
    assert not is_usable("   ")
    assert not is_usable("unknown")


# ── resolve_identity ────────────────────────────────────────────


def test_user_message_mints_new_id():
    identity = resolve_identity(Action.USER_MESSAGE, ConfirmationState(), mint=_minter("new"))
    assert identity.session_id == "new"
    assert not identity.is_continuation


def test_user_message_reuses_pending_confirmation():
    state = ConfirmationState(True, "confirm-id")
    identity = resolve_identity(Action.USER_MESSAGE, state, mint=_minter("new"))
    assert identity.session_id == "confirm-id"
    assert identity.is_continuation


def test_user_message_ignores_confirmation_without_id():
    state = ConfirmationState(True, None)
    assert not state.pending
    identity = resolve_identity(Action.USER_MESSAGE, state, mint=_minter("new"))
    assert identity.session_id == "new"


def test_request_more_mints_and_references_prompt():
    identity = resolve_identity(Action.REQUEST_MORE, prompt_session_id=PROMPT_ID, mint=_minter("fresh"))
    assert identity.session_id == "fresh"
    assert identity.old_session_id == PROMPT_ID
    assert not identity.is_continuation


def test_request_more_never_reuses_prompt_id():
    identity = resolve_identity(
        Action.REQUEST_MORE, prompt_session_id=PROMPT_ID, mint=_minter(PROMPT_ID, "fresh"),
    )
    assert identity.session_id == "fresh"


def test_next_stage_reuses_prompt_id():
    identity = resolve_identity(Action.NEXT_STAGE, prompt_session_id=PROMPT_ID)
    assert identity.session_id == PROMPT_ID
    assert identity.old_session_id is None


@pytest.mark.parametrize("action", [Action.REQUEST_MORE, Action.NEXT_STAGE])
@pytest.mark.parametrize("bad", [None, "", "unknown"])
def test_continuing_actions_require_usable_prompt_id(action, bad):
    with pytest.raises(SessionIdentityError):
        resolve_identity(action, prompt_session_id=bad)


# ── SessionRegistry ─────────────────────────────────────────────


def test_registry_register_and_expire():
    clock = FakeClock()
    registry = SessionRegistry(clock=clock, ttl=10)
    registry.register("a")
    assert registry.is_valid("a")
    assert "a" in registry
    clock.now = 10
    assert not registry.is_valid("a")


def test_registry_cleanup_counts_removed():
    clock = FakeClock()
    registry = SessionRegistry(clock=clock, ttl=10)
    registry.register("a")
    registry.register("b", ttl=100)
    clock.now = 50
    assert registry.cleanup() == 1
    assert registry.active_count() == 1
    assert registry.is_valid("b")


def test_registry_remove_and_unknown():
    registry = SessionRegistry()
    registry.register("a")
    registry.remove("a")
    registry.remove("never-registered")
    assert not registry.is_valid("a")
    assert registry.active_count() == 0


def test_registry_register_sweeps_expired():
    clock = FakeClock()
    registry = SessionRegistry(clock=clock, ttl=5)
    registry.register("old")
    clock.now = 6
    registry.register("new")
    assert registry.active_count() == 1
