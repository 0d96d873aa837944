import re

import pytest

from clinic_app.utils.captcha import (
    CAPTCHA_TTL_SECONDS, captcha_store, generate_hidden_captcha, verify_hidden_captcha
)
from clinic_app.utils.ttl_store import InMemoryTTLStore

NOW = 1_000_000.0


class EqualOperands:
    """Always draws 5 and 5 and picks subtraction."""
    def randint(self, low, high):
        return 5

    def random(self):
        return 0.1


@pytest.fixture
def store():
    return InMemoryTTLStore()


def _answer(store, session_id):
    return store.get(session_id)['answer']


def test_challenge_shape(store):
    challenge = generate_hidden_captcha(store=store, now=NOW)
    assert re.fullmatch(r'[0-9a-f]{32}', challenge['sessionId'])
    match = re.fullmatch(r'(\d) ([+-]) (\d)', challenge['challenge'])
    assert match
    a, op, b = int(match.group(1)), match.group(2), int(match.group(3))
    assert _answer(store, challenge['sessionId']) == (a + b if op == '+' else a - b)


def test_correct_answer_consumes_session(store):
    session_id = generate_hidden_captcha(store=store, now=NOW)['sessionId']
    answer = _answer(store, session_id)

    assert verify_hidden_captcha(session_id, f' {answer} ', store=store, now=NOW) == {'success': True}
    assert verify_hidden_captcha(session_id, answer, store=store, now=NOW)['error'] == 'Invalid session'


def test_zero_answer_is_accepted(store):
    challenge = generate_hidden_captcha(store=store, rng=EqualOperands(), now=NOW)
    assert challenge['challenge'] == '5 - 5'
    assert verify_hidden_captcha(challenge['sessionId'], '0', store=store, now=NOW)['success'] is True


def test_attempt_budget(store):
    session_id = generate_hidden_captcha(store=store, now=NOW)['sessionId']
    correct = _answer(store, session_id)
    wrong = correct + 1

    first = verify_hidden_captcha(session_id, wrong, store=store, now=NOW)
    assert first == {'success': False, 'error': 'Incorrect answer', 'attemptsLeft': 2}
    assert verify_hidden_captcha(session_id, 'abc', store=store, now=NOW)['attemptsLeft'] == 1
    assert verify_hidden_captcha(session_id, wrong, store=store, now=NOW)['error'] == 'Too many attempts'

    fourth = verify_hidden_captcha(session_id, correct, store=store, now=NOW)
    assert fourth == {'success': False, 'error': 'Invalid session'}


def test_expired_session(store):
    session_id = generate_hidden_captcha(store=store, now=NOW)['sessionId']
    answer = _answer(store, session_id)
    later = NOW + CAPTCHA_TTL_SECONDS + 1

    assert verify_hidden_captcha(session_id, answer, store=store, now=later)['error'] == 'Session expired'
    assert verify_hidden_captcha(session_id, answer, store=store, now=later)['error'] == 'Invalid session'


def test_unknown_or_missing_session(store):
    assert verify_hidden_captcha(None, 3, store=store)['error'] == 'Invalid session'
    assert verify_hidden_captcha('deadbeef', 3, store=store)['error'] == 'Invalid session'


def test_concurrent_challenges_do_not_collide(store):
    ids = {generate_hidden_captcha(store=store, now=NOW)['sessionId'] for _ in range(50)}
    assert len(ids) == 50


def test_injected_empty_store_is_used(store):
    session_id = generate_hidden_captcha(store=store, now=NOW)['sessionId']
    assert len(store) == 1
    assert captcha_store.get(session_id) is None
