"""
Tests for in-memory client state: verification expiry, the captcha and the
per-generator submission slots.
"""

import random
from datetime import datetime, timedelta

import pytest

from veggie_muse.errors import GeneratorBusyError
from veggie_muse.pipeline.state import GeneratorKind, GeneratorSlot, GeneratorStage
from veggie_muse.services.captcha import CaptchaChallenge, check_answer, generate_challenge
from veggie_muse.services.session_manager import SessionManager

from conftest import make_weekly_plan


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class TestVerification:
    def test_new_session_is_unverified(self, client_session):
        assert not client_session.check_verification()

    def test_stays_verified_within_timeout(self, client_session):
        client_session.set_verified()
        later = client_session.last_activity + timedelta(minutes=14)
        assert client_session.check_verification(now=later)

    def test_expires_after_fifteen_idle_minutes(self, client_session):
        client_session.set_verified()
        later = client_session.last_activity + timedelta(minutes=15, seconds=1)
        assert not client_session.check_verification(now=later)
        assert not client_session.verified

    def test_activity_extends_verification(self, client_session):
        client_session.set_verified()
        start = client_session.last_activity
        client_session.touch(now=start + timedelta(minutes=10))
        assert client_session.check_verification(now=start + timedelta(minutes=20))

    def test_timeout_configurable(self, client_session, monkeypatch):
        monkeypatch.setenv("VERIFICATION_TIMEOUT_MINUTES", "1")
        client_session.set_verified()
        assert not client_session.check_verification(now=datetime.now() + timedelta(minutes=2))

    def test_set_verified_clears_challenge(self, client_session):
        client_session.pending_challenge = CaptchaChallenge("What is 1 + 1?", "2")
        client_session.set_verified()
        assert client_session.pending_challenge is None


class TestSessionManager:
    def test_get_or_create_reuses(self):
        manager = SessionManager()
        assert manager.get_or_create("a") is manager.get_or_create("a")
        assert manager.get_or_create("a") is not manager.get_or_create("b")

    def test_drop(self):
        manager = SessionManager()
        manager.get_or_create("a")
        assert manager.drop("a")
        assert not manager.drop("a")

    def test_new_client_evicts_idle_sessions(self):
        manager = SessionManager()
        month_ago = datetime.now() - timedelta(days=30)
        for i in range(1000):
            manager.get_or_create(f"stale-{i}").touch(now=month_ago)

        manager.get_or_create("fresh")
        assert list(manager._sessions) == ["fresh"]

    def test_recent_and_busy_sessions_survive_eviction(self):
        manager = SessionManager()
        start = datetime.now()
        manager.get_or_create("recent").touch(now=start - timedelta(minutes=5))
        busy = manager.get_or_create("busy")
        busy.touch(now=start - timedelta(hours=2))
        busy.slot(GeneratorKind.PASSPORT).begin()

        assert manager.evict_idle(now=start) == 0
        assert set(manager._sessions) == {"recent", "busy"}

    def test_existing_client_is_not_recreated(self):
        manager = SessionManager()
        session = manager.get_or_create("a")
        session.set_verified()
        assert manager.get_or_create("a") is session
        assert manager.get_or_create("a").verified


# ---------------------------------------------------------------------------
# Captcha
# ---------------------------------------------------------------------------


class TestCaptcha:
    def test_answers_are_correct(self):
        rng = random.Random(1234)
        for _ in range(50):
            challenge = generate_challenge(rng)
            expression = challenge.question.removeprefix("What is ").removesuffix("?")
            a, op, b = expression.split()
            expected = {"+": int(a) + int(b), "-": int(a) - int(b), "*": int(a) * int(b)}[op]
            assert challenge.answer == str(expected)
            assert int(challenge.answer) >= 0

    def test_check_answer_trims_and_ignores_case(self):
        challenge = CaptchaChallenge("What is 2 + 3?", "5")
        assert check_answer(challenge, "  5 ")
        assert not check_answer(challenge, "6")


# ---------------------------------------------------------------------------
# Generator slots
# ---------------------------------------------------------------------------


class TestGeneratorSlot:
    def test_lifecycle(self):
        slot = GeneratorSlot(kind=GeneratorKind.WEEKLY_PLAN)
        slot.begin()
        assert slot.stage == GeneratorStage.SUBMITTING
        plan = make_weekly_plan()
        slot.succeed(plan)
        assert slot.stage == GeneratorStage.SUCCESS
        assert slot.result == plan
        slot.reset()
        assert slot.stage == GeneratorStage.IDLE
        assert slot.result is None

    def test_second_submit_while_in_flight_rejected(self):
        slot = GeneratorSlot(kind=GeneratorKind.RECIPE)
        slot.begin()
        with pytest.raises(GeneratorBusyError):
            slot.begin()

    def test_failed_does_not_lock(self):
        slot = GeneratorSlot(kind=GeneratorKind.PASSPORT)
        slot.begin()
        slot.fail("overloaded")
        assert slot.stage == GeneratorStage.FAILED
        assert slot.error == "overloaded"
        slot.begin()
        assert slot.stage == GeneratorStage.SUBMITTING
        assert slot.error is None

    def test_new_submission_clears_previous_result(self):
        slot = GeneratorSlot(kind=GeneratorKind.WEEKLY_PLAN)
        slot.begin()
        slot.succeed(make_weekly_plan())
        slot.begin()
        assert slot.result is None

    def test_session_has_one_slot_per_generator(self, client_session):
        assert client_session.slot(GeneratorKind.RECIPE) is client_session.slot("recipe")
        assert client_session.slot(GeneratorKind.RECIPE) is not client_session.slot(GeneratorKind.PASSPORT)
