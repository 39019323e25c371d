from datetime import timedelta

import pytest
from sqlalchemy import update

from sessionguard.model.verification_codes import (
    PURPOSE_EMAIL,
    PURPOSE_PASSWORD,
    VerificationCode,
)
from sessionguard.service.verification_service import VerificationService
from sessionguard.utils.errors import ValidationError


@pytest.fixture
def user(services):
    return services.auth.create_user("Alice", "a@x.com", "pw1")


def _count_codes(services, user_id):
    with services.session_factory() as db:
        return db.query(VerificationCode).filter(VerificationCode.user_id == user_id).count()


def test_generate_code_is_six_digits():
    for _ in range(50):
        code = VerificationService.generate_code()
        assert len(code) == 6
        assert code.isdigit()
        assert code[0] != "0"


def test_request_sets_fifteen_minute_expiry(services, user):
    services.verification.request(user.id, PURPOSE_PASSWORD)
    with services.session_factory() as db:
        row = db.query(VerificationCode).one()
    assert row.expiry - row.created_at == timedelta(minutes=15)


def test_request_rejects_unknown_purpose(services, user):
    with pytest.raises(ValueError):
        services.verification.request(user.id, "sms")


def test_consume_succeeds_once(services, user):
    code = services.verification.request(user.id, PURPOSE_PASSWORD)

    with services.session_factory.begin() as db:
        services.verification.consume(db, user.id, code, PURPOSE_PASSWORD)

    with pytest.raises(ValidationError, match="Invalid or expired verification code."):
        with services.session_factory.begin() as db:
            services.verification.consume(db, user.id, code, PURPOSE_PASSWORD)


def test_consume_deletes_every_code_for_user(services, user):
    first = services.verification.request(user.id, PURPOSE_PASSWORD)
    services.verification.request(user.id, PURPOSE_PASSWORD)
    services.verification.request(user.id, PURPOSE_EMAIL, new_email="new@x.com")
    assert _count_codes(services, user.id) == 3

    with services.session_factory.begin() as db:
        services.verification.consume(db, user.id, first, PURPOSE_PASSWORD)

    assert _count_codes(services, user.id) == 0


def test_consume_rejects_expired_code(services, user):
    code = services.verification.request(user.id, PURPOSE_PASSWORD)
    with services.session_factory.begin() as db:
        db.execute(
            update(VerificationCode).values(
                expiry=VerificationCode.created_at - timedelta(seconds=1)
            )
        )

    with pytest.raises(ValidationError):
        with services.session_factory.begin() as db:
            services.verification.consume(db, user.id, code, PURPOSE_PASSWORD)


def test_consume_requires_matching_purpose(services, user):
    code = services.verification.request(user.id, PURPOSE_EMAIL, new_email="new@x.com")
    with pytest.raises(ValidationError):
        with services.session_factory.begin() as db:
            services.verification.consume(db, user.id, code, PURPOSE_PASSWORD)
    assert _count_codes(services, user.id) == 1


def test_consume_email_code_is_bound_to_new_address(services, user):
    code = services.verification.request(user.id, PURPOSE_EMAIL, new_email="new@x.com")
    with pytest.raises(ValidationError):
        with services.session_factory.begin() as db:
            services.verification.consume(
                db, user.id, code, PURPOSE_EMAIL, new_email="other@x.com"
            )

    with services.session_factory.begin() as db:
        row = services.verification.consume(
            db, user.id, code, PURPOSE_EMAIL, new_email="new@x.com"
        )
        assert row.new_email == "new@x.com"


def test_consume_is_scoped_to_user(services, user):
    other = services.auth.create_user("Bob", "b@x.com", "pw2")
    code = services.verification.request(user.id, PURPOSE_PASSWORD)
    with pytest.raises(ValidationError):
        with services.session_factory.begin() as db:
            services.verification.consume(db, other.id, code, PURPOSE_PASSWORD)
