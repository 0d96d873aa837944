# /clinic_app/utils/captcha.py
import random
import secrets
import time

from clinic_app.utils.ttl_store import InMemoryTTLStore

CAPTCHA_TTL_SECONDS = 5 * 60
CAPTCHA_MAX_ATTEMPTS = 3
# Sessions outlive their challenge so an expired one is reported as expired, not unknown.
CAPTCHA_RETENTION_SECONDS = 2 * CAPTCHA_TTL_SECONDS
CAPTCHA_STORE_SIZE = 10000

captcha_store = InMemoryTTLStore(maxsize=CAPTCHA_STORE_SIZE)
_random = random.SystemRandom()


def generate_hidden_captcha(store=None, rng=None, now=None):
    """Creates an arithmetic challenge and returns its session id and text."""
    store = captcha_store if store is None else store
    rng = rng or _random
    now = time.time() if now is None else now

    num1 = rng.randint(1, 9)
    num2 = rng.randint(1, 9)
    if rng.random() > 0.5:
        answer = num1 + num2
        challenge = f'{num1} + {num2}'
    else:
        high, low = max(num1, num2), min(num1, num2)
        answer = high - low
        challenge = f'{high} - {low}'

    session_id = secrets.token_hex(16)
    store.set(session_id, {
        'answer': answer,
        'expires_at': now + CAPTCHA_TTL_SECONDS,
        'attempts': 0,
    }, CAPTCHA_RETENTION_SECONDS)

    return {'sessionId': session_id, 'challenge': challenge}


def _parse_answer(answer):
    if isinstance(answer, bool):
        return None
    if isinstance(answer, int):
        return answer
    try:
        return int(str(answer).strip())
    except (TypeError, ValueError):
        return None


def verify_hidden_captcha(session_id, answer, store=None, now=None):
    """
    Checks an answer against a stored challenge.

    Returns {'success': True} or {'success': False, 'error': ..., 'attemptsLeft'?: n}.
    The session is deleted on success, on expiry and when the attempt budget runs out.
    """
    store = captcha_store if store is None else store
    now = time.time() if now is None else now

    session = store.get(session_id) if session_id else None
    if session is None:
        return {'success': False, 'error': 'Invalid session'}

    if now > session['expires_at']:
        store.delete(session_id)
        return {'success': False, 'error': 'Session expired'}

    session['attempts'] += 1

    parsed = _parse_answer(answer)
    if parsed is not None and parsed == session['answer']:
        store.delete(session_id)
        return {'success': True}

    if session['attempts'] >= CAPTCHA_MAX_ATTEMPTS:
        store.delete(session_id)
        return {'success': False, 'error': 'Too many attempts'}

    return {
        'success': False,
        'error': 'Incorrect answer',
        'attemptsLeft': CAPTCHA_MAX_ATTEMPTS - session['attempts'],
    }
