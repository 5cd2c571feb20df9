"""
Tests for the operator scripts (VAPID key generation, account creation)
"""
import base64
from unittest.mock import patch

from sqlalchemy.orm import sessionmaker

import create_user
import generate_vapid_keys
from subtrack.auth import verify_password
from subtrack.infrastructure.db.models import User


def _b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


class TestGenerateVapidKeys:
    def test_prints_env_lines(self, capsys):
        generate_vapid_keys.main()
        lines = dict(line.split("=", 1) for line in capsys.readouterr().out.strip().splitlines())

        public = _b64url_decode(lines["VAPID_PUBLIC_KEY"])
        private = _b64url_decode(lines["VAPID_PRIVATE_KEY"])
        assert len(public) == 65 and public[0] == 4
        assert len(private) == 32


class TestCreateUser:
    def test_creates_once(self, db_engine, capsys):
        factory = sessionmaker(bind=db_engine)
        argv = ["create_user.py", "New@Example.com", "pw123456", "--name", "New"]
        with patch("create_user.get_session_factory", return_value=factory), patch("sys.argv", argv):
            create_user.main()
            create_user.main()

        out = capsys.readouterr().out
        assert "Created user: new@example.com" in out
        assert "User already exists" in out

        db = factory()
        users = db.query(User).all()
        assert len(users) == 1
        assert verify_password("pw123456", users[0].password_hash)
        db.close()
