import json
import sys
from pathlib import Path

import pytest


BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CapturingNotifier:
    def __init__(self):
        self.sent: list[dict] = []

    def send_otp(self, *, email, code, interview_id, expires_in_seconds):
        self.sent.append({"email": email, "code": code, "interviewId": interview_id, "ttl": expires_in_seconds})

    @property
    def last_code(self) -> str:
        return self.sent[-1]["code"]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def notifier() -> CapturingNotifier:
    return CapturingNotifier()


@pytest.fixture()
def app_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, clock: FakeClock, notifier: CapturingNotifier):
    db_path = tmp_path / "test.db"

    monkeypatch.setenv("ENV", "testing")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("INTERNAL_CRON_TOKEN", "test-cron-token")

    # Prevent accidental pollution from any existing env config.
    for name in ("REDIS_URL", "SESSION_STORE_BACKEND", "FEEDBACK_AI_ENABLED", "OPENAI_API_KEY", "OTP_WEBHOOK_URL"):
        monkeypatch.delenv(name, raising=False)

    from interview_gate import create_app

    app = create_app(otp_notifier=notifier, clock=clock)
    app.testing = True

    with app.test_client() as client:
        yield app, client


@pytest.fixture()
def seed_interview(app_client):
    app, _client = app_client

    def _seed(
        interview_id: str = "INT-1",
        *,
        interview_type: str = "behavioral",
        email: str = "cand@example.com",
        name: str = "Ada Lovelace",
        questions: list | None = None,
        status: str = "scheduled",
    ):
        from interview_gate.db import session_scope
        from interview_gate.models import Interview
        from interview_gate.utils.datetime import iso_utc_now

        now = iso_utc_now()
        with session_scope(app.extensions["db_session_factory"]) as db:
            db.add(
                Interview(
                    interviewId=interview_id,
                    interviewType=interview_type,
                    candidateEmail=email,
                    candidateName=name,
                    status=status,
                    questionsJson=json.dumps(questions or []),
                    createdAt=now,
                    updatedAt=now,
                )
            )
        return interview_id

    return _seed
