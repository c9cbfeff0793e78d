from models.user import User


def test_create_user_and_make_admin(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["create-user", "Coach@Club.test", "s3cret-pass", "--role", "staff", "--first-name", "Pat"])
    assert "Created coach@club.test (STAFF)" in result.output

    user = User.query.filter_by(email="coach@club.test").one()
    assert user.role_names == {"STAFF"}
    assert user.first_name == "Pat"

    result = runner.invoke(args=["create-user", "coach@club.test", "other"])
    assert "Email already registered" in result.output

    result = runner.invoke(args=["make-admin", "coach@club.test"])
    assert "promoted to ADMIN" in result.output
    assert User.query.filter_by(email="coach@club.test").one().role_names == {"STAFF", "ADMIN"}


def test_make_admin_unknown_user(app):
    result = app.test_cli_runner().invoke(args=["make-admin", "nobody@club.test"])
    assert "User not found" in result.output
