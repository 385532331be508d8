from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest

from school_results.core.config import Settings
from school_results.core.exceptions import AuthenticationError, ForbiddenError
from school_results.core.security import create_access_token, decode_tenant_claims
from school_results.core.security_utils import sanitize_search_term
from school_results.models.tenant_specific.user import UserRole

settings = Settings(database_url="sqlite+aiosqlite://", jwt_secret_key="unit-test-secret")


def encode(payload):
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def test_token_round_trip():
    user_id, school_id = uuid4(), uuid4()
    token = create_access_token(settings, user_id=user_id, school_id=school_id, role="teacher")

    context = decode_tenant_claims(settings, token)

    assert context.user_id == user_id
    assert context.school_id == school_id
    assert context.role == UserRole.TEACHER
    assert context.is_teacher and not context.is_admin


def test_legacy_claim_names_are_accepted():
    user_id, school_id = uuid4(), uuid4()
    token = encode({"id": str(user_id), "tenant_id": str(school_id), "role": "admin"})

    context = decode_tenant_claims(settings, token)

    assert context.school_id == school_id
    assert context.is_admin


def test_token_without_school_is_forbidden():
    token = encode({"sub": str(uuid4()), "role": "teacher"})
    with pytest.raises(ForbiddenError):
        decode_tenant_claims(settings, token)


def test_expired_token():
    token = encode({
        "sub": str(uuid4()),
        "school_id": str(uuid4()),
        "role": "teacher",
        "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
    })
    with pytest.raises(AuthenticationError) as exc:
        decode_tenant_claims(settings, token)
    assert exc.value.message == "Token expired"


def test_wrong_signature_and_unknown_role():
    forged = jwt.encode({"sub": str(uuid4()), "school_id": str(uuid4()), "role": "admin"}, "other-secret", algorithm="HS256")
    with pytest.raises(AuthenticationError):
        decode_tenant_claims(settings, forged)

    with pytest.raises(AuthenticationError):
        decode_tenant_claims(settings, encode({"sub": str(uuid4()), "school_id": str(uuid4()), "role": "parent"}))


def test_sanitize_search_term_escapes_like_wildcards():
    assert sanitize_search_term("  50%_off\\ ") == "50\\%\\_off\\\\"
    assert len(sanitize_search_term("x" * 500)) == 100
