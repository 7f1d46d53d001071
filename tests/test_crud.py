from __future__ import annotations

import unittest

from fleetledger import crud
from tests.support import make_session


class PasswordTests(unittest.TestCase):
    def test_hash_round_trip(self) -> None:
        hashed = crud.bcrypt_hash("hunter22")
        self.assertTrue(crud.bcrypt_verify("hunter22", hashed))
        self.assertFalse(crud.bcrypt_verify("hunter23", hashed))

    def test_stored_hash_is_used_verbatim(self) -> None:
        hashed = crud.bcrypt_hash("hunter22")
        self.assertFalse(crud.bcrypt_verify("hunter22", f"`{hashed}`"))

    def test_missing_hash_never_matches(self) -> None:
        self.assertFalse(crud.bcrypt_verify("hunter22", None))
        self.assertFalse(crud.bcrypt_verify("hunter22", ""))


class AccountTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()()

    def tearDown(self) -> None:
        self.db.close()

    def test_verify_account_normalizes_email(self) -> None:
        crud.create_account(self.db, " Owner@Fleet.test ", "hunter22")
        self.assertIsNotNone(crud.verify_account(self.db, "owner@fleet.test", "hunter22"))
        self.assertIsNone(crud.verify_account(self.db, "owner@fleet.test", "wrong"))
