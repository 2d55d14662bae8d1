"""
Weekly coach quota: allowance arithmetic, UTC week boundaries, usage
counting and the /api/coach/quota endpoint.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from main import app
from models import CoachMessage
from services import coach_access, conversation_service
from services.coach_access import (
    UNLIMITED_REMAINING,
    build_quota,
    can_use_coach,
    compute_allowed_requests,
    get_coach_quota,
    utc_week_range,
)

client = TestClient(app)


@pytest.fixture(scope="module", autouse=True)
def _app_lifespan():
    with client:
        yield


class TestAllowance:
    @pytest.mark.parametrize(
        "referrals, allowed",
        [(0, 5), (1, 15), (3, 35), (5, 55), (9, 55), (-2, 5)],
    )
    def test_referrals_are_clamped(self, referrals, allowed):
        assert compute_allowed_requests(referrals) == allowed

    def test_remaining_never_negative(self):
        quota = build_quota(used_this_week=10, successful_referrals=0, is_unlimited=False)
        assert quota.allowed_this_week == 5
        assert quota.remaining_this_week == 0
        assert can_use_coach(quota) is False

    def test_remaining_counts_down(self):
        quota = build_quota(used_this_week=2, successful_referrals=1, is_unlimited=False)
        assert quota.remaining_this_week == 13
        assert can_use_coach(quota) is True

    def test_unlimited_ignores_usage(self):
        quota = build_quota(used_this_week=500, successful_referrals=0, is_unlimited=True)
        assert quota.remaining_this_week == UNLIMITED_REMAINING
        assert can_use_coach(quota) is True

    def test_quota_echoes_program_constants(self):
        quota = build_quota(used_this_week=0, successful_referrals=2, is_unlimited=False, referral_code="ABCD1234")
        assert quota.weekly_base_requests == 5
        assert quota.bonus_per_successful_referral == 10
        assert quota.max_referrals == 5
        assert quota.successful_referrals == 2
        assert quota.referral_code == "ABCD1234"


class TestUtcWeekRange:
    def test_midweek(self):
        start, end = utc_week_range(datetime(2026, 3, 11, 15, 30, tzinfo=timezone.utc))  # Wednesday
        assert start == datetime(2026, 3, 9, tzinfo=timezone.utc)
        assert end == datetime(2026, 3, 15, 23, 59, 59, 999000, tzinfo=timezone.utc)

    def test_monday_midnight_starts_the_week(self):
        monday = datetime(2026, 3, 9, 0, 0, tzinfo=timezone.utc)
        assert utc_week_range(monday)[0] == monday

    def test_sunday_late_is_same_week(self):
        start, _ = utc_week_range(datetime(2026, 3, 15, 23, 59, tzinfo=timezone.utc))
        assert start == datetime(2026, 3, 9, tzinfo=timezone.utc)

    def test_other_timezones_are_converted_to_utc(self):
        # Monday 01:00 at UTC+2 is still Sunday in UTC
        plus_two = timezone(timedelta(hours=2))
        start, _ = utc_week_range(datetime(2026, 3, 16, 1, 0, tzinfo=plus_two))
        assert start == datetime(2026, 3, 9, tzinfo=timezone.utc)


class TestUsageCounting:
    def test_counts_user_messages_of_this_week_only(self, db_session, test_user):
        conversation = conversation_service.create_conversation(
            db_session,
            test_user.id,
            initial_messages=[
                conversation_service.NewMessage(role="user", content="Q1"),
                conversation_service.NewMessage(role="coach", content="A1"),
                conversation_service.NewMessage(role="user", content="Q2"),
                conversation_service.NewMessage(role="coach", content="A2"),
            ],
        )
        db_session.add(
            CoachMessage(
                conversation_id=conversation.id,
                user_id=test_user.id,
                position=4,
                role="user",
                content="old question",
                created_at=datetime.now(timezone.utc) - timedelta(days=8),
            )
        )
        db_session.commit()

        quota = get_coach_quota(db_session, test_user.id)
        assert quota.used_this_week == 2
        assert quota.remaining_this_week == 3

    def test_pioneer_is_unlimited(self, db_session, make_user):
        pioneer = make_user(is_pioneer=True)
        quota = get_coach_quota(db_session, pioneer.id)
        assert quota.is_unlimited is True
        assert quota.remaining_this_week == UNLIMITED_REMAINING

    def test_referrals_raise_the_allowance(self, db_session, make_user):
        user = make_user(successful_referral_count=2)
        assert get_coach_quota(db_session, user.id).allowed_this_week == 25


class TestQuotaEndpoint:
    def test_requires_auth(self):
        response = client.get("/api/coach/quota")
        assert response.status_code == 401

    def test_fresh_user(self, auth_headers):
        response = client.get("/api/coach/quota", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["usedThisWeek"] == 0
        assert data["allowedThisWeek"] == 5
        assert data["remainingThisWeek"] == 5
        assert data["isUnlimited"] is False
        assert data["weeklyBaseRequests"] == 5
        assert data["bonusPerSuccessfulReferral"] == 10
        assert data["maxReferrals"] == 5
        assert data["successfulReferrals"] == 0

    def test_referral_code_is_created_once(self, auth_headers):
        first = client.get("/api/coach/quota", headers=auth_headers).json()
        second = client.get("/api/coach/quota", headers=auth_headers).json()

        code = first["referralCode"]
        assert code and len(code) == 8
        assert second["referralCode"] == code
        assert first["invitationLink"] == f"/register?ref={code}"


def test_invitation_link_uses_frontend_url(monkeypatch):
    monkeypatch.setattr(coach_access.settings, "FRONTEND_URL", "https://fitcheck.app/")
    assert coach_access.build_invitation_link("AB12CD34") == "https://fitcheck.app/register?ref=AB12CD34"
