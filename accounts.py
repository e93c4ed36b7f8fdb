import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import as_utc, create_document, to_object_id, utcnow
from errors import AuthenticationError, ConflictError, NotFoundError
from mailer import Mailer
from schemas import RegisterPayload, UserState
from security import Principal, get_password_hash, verify_password

logger = logging.getLogger(__name__)

COLLECTION = "account"
INVALID_LOGIN = "Invalid email or password"
INVALID_CODE = "Invalid or expired code"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def principal_for(account: Dict[str, Any]) -> Principal:
    return Principal(
        id=str(account["_id"]),
        email=account["email"],
        name=account["name"],
        is_admin=bool(account.get("is_admin", False)),
    )


class AccountService:
    def __init__(self, db: Database, mailer: Optional[Mailer] = None):
        self.db = db
        self.mailer = mailer

    @property
    def accounts(self):
        return self.db[COLLECTION]

    def register(self, payload: RegisterPayload, is_admin: bool = False) -> Dict[str, Any]:
        email = normalize_email(payload.email)
        if self.accounts.find_one({"email": email}):
            raise ConflictError("Email already in use")
        try:
            account = create_document(self.db, COLLECTION, {
                "name": payload.name.strip(),
                "email": email,
                "password_hash": get_password_hash(payload.password),
                "is_admin": is_admin,
                "cart": [],
                "wishlist": [],
                "addresses": [],
            })
        except DuplicateKeyError:
            raise ConflictError("Email already in use")
        logger.info(f"Account {account['_id']} registered")
        return account

    def authenticate(self, email: str, password: str) -> Dict[str, Any]:
        account = self.accounts.find_one({"email": normalize_email(email)})
        if not account or not verify_password(password, account["password_hash"]):
            logger.warning("Failed password login")
            raise AuthenticationError(INVALID_LOGIN)
        return account

    def get(self, account_id: str) -> Dict[str, Any]:
        oid = to_object_id(account_id)
        account = self.accounts.find_one({"_id": oid}) if oid else None
        if not account:
            raise NotFoundError("User", account_id)
        return account

    def request_otp(self, email: str) -> Optional[str]:
        """Issue a login code for a registered email.

        Returns the code only when it should be shown to the caller, i.e. it
        could not be mailed and we are not running in production. Unknown
        emails return None exactly like a successful send.
        """
        email = normalize_email(email)
        account = self.accounts.find_one({"email": email}, {"_id": 1})
        if not account:
            logger.info("OTP requested for unknown email")
            return None

        code = "".join(secrets.choice("0123456789") for _ in range(config.OTP_LENGTH))
        expires_at = utcnow() + timedelta(minutes=config.OTP_EXPIRE_MINUTES)
        # A new code always replaces the previous one
        self.accounts.update_one({"_id": account["_id"]}, {"$set": {"otp": {"code": code, "expires_at": expires_at, "attempts": 0}}})

        if self.mailer is not None:
            try:
                self.mailer.send_otp(email, code)
                return None
            except OSError:
                logger.exception(f"Sending OTP to account {account['_id']} failed")
        if config.IS_PRODUCTION:
            return None
        logger.info(f"OTP for {email}: {code}")
        return code

    def verify_otp(self, email: str, code: str) -> Dict[str, Any]:
        account = self.accounts.find_one({"email": normalize_email(email)})
        otp = account.get("otp") if account else None
        if not otp:
            raise AuthenticationError(INVALID_CODE)
        if not secrets.compare_digest(str(otp["code"]), code.strip()):
            self._record_failed_attempt(account["_id"], otp["code"])
            raise AuthenticationError(INVALID_CODE)
        if as_utc(otp["expires_at"]) < utcnow():
            self.accounts.update_one({"_id": account["_id"]}, {"$unset": {"otp": ""}})
            raise AuthenticationError(INVALID_CODE)

        # Single use: only the request that still sees this exact code gets in
        res = self.accounts.update_one(
            {"_id": account["_id"], "otp.code": otp["code"]},
            {"$unset": {"otp": ""}},
        )
        if res.modified_count == 0:
            raise AuthenticationError(INVALID_CODE)
        account.pop("otp", None)
        return account

    def _record_failed_attempt(self, account_id, issued_code: str) -> None:
        updated = self.accounts.find_one_and_update(
            {"_id": account_id, "otp.code": issued_code},
            {"$inc": {"otp.attempts": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if updated and updated["otp"].get("attempts", 0) >= config.OTP_MAX_ATTEMPTS:
            self.accounts.update_one({"_id": account_id, "otp.code": issued_code}, {"$unset": {"otp": ""}})
            logger.warning(f"OTP for account {account_id} cleared after {config.OTP_MAX_ATTEMPTS} failed attempts")

    def get_state(self, account_id: str) -> Dict[str, Any]:
        account = self.get(account_id)
        cart = []
        for entry in account.get("cart", []):
            oid = to_object_id(entry.get("listing_id"))
            listing = self.db["listing"].find_one({"_id": oid}) if oid else None
            if not listing:
                continue
            listing["id"] = str(listing.pop("_id"))
            listing["quantity_in_cart"] = entry.get("quantity", 1)
            listing["selected"] = entry.get("selected", True)
            cart.append(listing)
        return {
            "cart": cart,
            "wishlist": account.get("wishlist", []),
            "addresses": account.get("addresses", []),
        }

    def save_state(self, account_id: str, state: UserState) -> None:
        oid = to_object_id(account_id)
        data = state.model_dump(mode="json")
        # wishlist is a set; keep first occurrence order
        data["wishlist"] = list(dict.fromkeys(data["wishlist"]))
        res = self.accounts.update_one({"_id": oid}, {"$set": {**data, "updated_at": utcnow()}}) if oid else None
        if res is None or res.matched_count == 0:
            raise NotFoundError("User", account_id)
