import pytest

from library_service.errors import AuthenticationFailed, ConflictState, DuplicateEntry


def test_register_and_authenticate(lib):
    user = lib.auth.register("reader", "pw", "reader@example.com", "Reader")
    assert user.role == "USER"
    assert user.password_hash != "pw"
    assert lib.auth.authenticate("reader", "pw").id == user.id
    with pytest.raises(AuthenticationFailed):
        lib.auth.authenticate("reader", "nope")
    with pytest.raises(DuplicateEntry):
        lib.auth.register("reader", "pw", "other@example.com", "Other")


def test_withdraw_deletes_own_account(lib):
    lib.auth.register("reader", "pw", "reader@example.com", "Reader")
    lib.auth.withdraw("reader", "pw")
    with pytest.raises(AuthenticationFailed):
        lib.auth.authenticate("reader", "pw")
    # the username is free again
    lib.auth.register("reader", "pw2", "reader@example.com", "Reader")


def test_withdraw_needs_the_right_password(lib):
    lib.auth.register("reader", "pw", "reader@example.com", "Reader")
    with pytest.raises(AuthenticationFailed):
        lib.auth.withdraw("reader", "wrong")
    assert lib.auth.authenticate("reader", "pw").username == "reader"


def test_admin_cannot_withdraw(lib):
    lib.auth.create_admin("admin", "pw", "admin@example.com")
    with pytest.raises(ConflictState):
        lib.auth.withdraw("admin", "pw")
    assert lib.auth.authenticate("admin", "pw").role == "ADMIN"
