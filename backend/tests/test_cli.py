"""
Flask CLI commands.
"""

from refurb.models import AuditLog, StockPiece, User
from refurb.services.pin_service import verify_pin


def test_create_user(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["users", "create", "--email", "cli@atelier.test", "--pin", "2580", "--name", "Atelier"])

    assert result.exit_code == 0, result.output
    assert "PASS Created user: Atelier (cli@atelier.test)" in result.output
    user = db_session.query(User).filter_by(email="cli@atelier.test").one()
    assert verify_pin("2580", user.pin_hash)


def test_create_user_rejects_bad_pin(app, db_session):
    result = app.test_cli_runner().invoke(args=["users", "create", "--email", "cli@atelier.test", "--pin", "12"])

    assert "FAIL Failed to create user" in result.output
    assert db_session.query(User).count() == 0


def test_list_users(app, user_a):
    result = app.test_cli_runner().invoke(args=["users", "list"])
    assert user_a.email in result.output
    assert "never" in result.output


def test_set_pin(app, db_session, user_a):
    result = app.test_cli_runner().invoke(args=["users", "set-pin", "--email", user_a.email, "--pin", "97531"])

    assert "PASS PIN updated" in result.output
    db_session.refresh(user_a)
    assert verify_pin("97531", user_a.pin_hash)
    assert db_session.query(AuditLog).filter_by(user_id=user_a.id, action="pin_reset").count() == 1


def test_set_pin_unknown_user(app, db_session):
    result = app.test_cli_runner().invoke(args=["users", "set-pin", "--email", "ghost@atelier.test", "--pin", "1111"])
    assert result.output.startswith("FAIL")


def test_low_stock(app, db_session, user_a, screen_piece):
    db_session.add(StockPiece(user_id=user_a.id, name="Plenty", quantity=50))
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["stock", "low", "--email", user_a.email])
    assert "WARN 1 piece(s) below 5:" in result.output
    assert "iPhone 12 screen [iPhone 12]" in result.output

    result = app.test_cli_runner().invoke(args=["stock", "low", "--email", user_a.email, "--threshold", "2"])
    assert "PASS No piece below 2." in result.output


def test_cleanup_sessions(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "cleanup-sessions"])
    assert "PASS Deleted 0 session(s)." in result.output
