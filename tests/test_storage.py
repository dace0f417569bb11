"""
Tests for connectu.core.storage - users and contacts
"""

import pytest
from pathlib import Path

from connectu.core.errors import ContactExists, Conflict, NotFound
from connectu.core.storage import Database


class TestDatabaseCreation:
    def test_create_database(self, temp_dir: Path):
        """Test creating a new database file"""
        db = Database(str(temp_dir / "nested" / "connectu.db"))

        assert db.db_path.exists()

    def test_reopen_keeps_data(self, temp_dir: Path):
        """Test that a second Database on the same file sees earlier writes"""
        path = str(temp_dir / "connectu.db")
        user = Database(path).create_user("1234567890", "Dana")

        reopened = Database(path)
        assert reopened.get_user(user.id).name == "Dana"


class TestUsers:
    def test_create_user_defaults(self, db):
        """Test that a new user gets profile defaults"""
        user = db.create_user("1234567890", "Dana")

        assert user.phone == "1234567890"
        assert user.about == "Hey there!"
        assert user.status == "active"
        assert user.is_online is False
        assert user.settings.read_receipts is True

    def test_phone_is_unique(self, db, alice):
        """Test that a phone number can only register once"""
        with pytest.raises(Conflict):
            db.create_user(alice.phone, "Impostor")

    def test_lookup_by_phone(self, db, alice):
        assert db.get_user_by_phone(alice.phone).id == alice.id
        assert db.get_user_by_phone("9999999999") is None

    def test_find_users_by_phones(self, db, alice, bob):
        users = db.find_users_by_phones([alice.phone, "9999999999", bob.phone])

        assert {u.id for u in users} == {alice.id, bob.id}

    def test_update_profile_partial(self, db, alice):
        """Test that only provided fields change"""
        updated = db.update_profile(alice.id, about="Busy")

        assert updated.about == "Busy"
        assert updated.name == "Alice"

    def test_update_missing_user(self, db):
        with pytest.raises(NotFound):
            db.update_settings("nobody", False)

    def test_presence_and_last_seen(self, db, alice):
        online = db.set_presence(alice.id, True)
        assert online.is_online is True

        offline = db.set_presence(alice.id, False, last_seen=123.0)
        assert offline.is_online is False
        assert offline.last_seen == 123.0

    def test_status(self, db, alice):
        assert db.set_status(alice.id, "inactive").status == "inactive"


class TestContacts:
    def test_add_and_list_contacts(self, db, alice, bob):
        db.add_contact(alice.id, bob.phone, "Bobby")

        contacts = db.list_contacts(alice.id)
        assert [(c.phone, c.name) for c in contacts] == [(bob.phone, "Bobby")]
        assert db.list_contacts(bob.id) == []

    def test_contact_unique_per_owner(self, db, alice, bob, carol):
        """Test that the same phone cannot be saved twice by one owner"""
        db.add_contact(alice.id, carol.phone, "Caz")
        db.add_contact(bob.id, carol.phone, "Carol C")

        with pytest.raises(ContactExists) as exc:
            db.add_contact(alice.id, carol.phone, "Other")
        assert '"Caz"' in exc.value.message
