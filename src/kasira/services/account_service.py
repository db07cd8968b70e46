from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Callable, Optional

from kasira.domain.errors import NotFoundError, UnauthorizedBranchError, UnauthorizedError, ValidationError
from kasira.domain.models import PaymentRecord, ROLE_CASHIER, ROLE_OWNER, User
from kasira.services.payment_service import QrisInitiator, TransferInitiator

log = logging.getLogger(__name__)

STATUS_TRIAL = "trial"
STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_PENDING_PAYMENT = "pending_payment"

TRIAL_DAYS = 7

# package -> (price, days of access)
PACKAGES: dict[str, tuple[float, int]] = {
    "Pro": (199000.0, 30),
    "Bisnis": (1900000.0, 365),
}

PERMISSIONS: dict[str, set[str]] = {
    "manage_branches": {ROLE_OWNER},
    "manage_products": {ROLE_OWNER},
    "adjust_stock": {ROLE_OWNER},
    "manage_staff": {ROLE_OWNER},
    "view_reports": {ROLE_OWNER},
    "create_transaction": {ROLE_OWNER, ROLE_CASHIER},
}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def can(user: User, action: str) -> bool:
    allowed_roles = PERMISSIONS.get(action)
    if not allowed_roles:
        return False
    return user.role in allowed_roles


def require_action(user: User, action: str) -> None:
    if not can(user, action):
        raise UnauthorizedError(f"Role '{user.role}' is not allowed to perform '{action}'.")


def _now_iso(now: datetime) -> str:
    return now.replace(microsecond=0).isoformat(sep=" ")


class AccountService:
    def __init__(self, repo, clock: Callable[[], datetime] | None = None):
        self.repo = repo
        self.clock = clock or datetime.now
        self.registration_initiators = {
            "TRANSFER": TransferInitiator(va_prefix="88920", digits=9, default_bank="MANDIRI"),
            "QRIS": QrisInitiator(label="KASIRA-SUBS"),
        }

    def get_user(self, user_id: str) -> User:
        user = self.repo.get_user(user_id)
        if not user:
            raise NotFoundError("User not found.")
        return user

    def login(self, email: str) -> User:
        """Look up an account by email, refresh its subscription status and refuse inactive owners."""
        user = self.repo.get_user_by_email((email or "").strip())
        if not user:
            raise UnauthorizedError("Unknown account.")

        if user.role == ROLE_OWNER and user.expired_at and user.status != STATUS_EXPIRED:
            if datetime.fromisoformat(user.expired_at) < self.clock():
                self.repo.update_user_status(user.id, STATUS_EXPIRED)
                log.info("subscription_expired user=%s", user.id)
                user = self.repo.get_user(user.id)
        if not self.is_subscription_active(user):
            log.info("login_refused_inactive user=%s status=%s", user.id, user.status)
            raise UnauthorizedError("Subscription expired. Renew your package to continue.")
        return user

    def is_subscription_active(self, user: User, now: Optional[datetime] = None) -> bool:
        if user.role != ROLE_OWNER:
            return True
        if user.status not in (STATUS_TRIAL, STATUS_ACTIVE):
            return False
        if not user.expired_at:
            return True
        return datetime.fromisoformat(user.expired_at) >= (now or self.clock())

    def _validate_identity(self, name: str, email: str) -> tuple[str, str]:
        name_clean = (name or "").strip()
        email_clean = (email or "").strip().lower()
        if not name_clean:
            raise ValidationError("Name is required.")
        if not _EMAIL_RE.match(email_clean):
            raise ValidationError("A valid email is required.")
        if self.repo.get_user_by_email(email_clean):
            raise ValidationError(f"Email '{email_clean}' is already registered.")
        return name_clean, email_clean

    def register_trial(self, name: str, email: str, business_name: str) -> User:
        name_clean, email_clean = self._validate_identity(name, email)
        now = self.clock()
        user = User(
            id=self.repo.new_id("USR"),
            name=name_clean,
            email=email_clean,
            role=ROLE_OWNER,
            business_name=(business_name or "").strip() or None,
            package_type="Trial",
            status=STATUS_TRIAL,
            expired_at=_now_iso(now + timedelta(days=TRIAL_DAYS)),
        )
        self.repo.create_user(user)
        log.info("trial_registered user=%s", user.id)
        return user

    def initiate_registration(
        self, name: str, email: str, business_name: str, package: str, payment: str
    ) -> PaymentRecord:
        """Open a paid registration; the owner is created on a ``paid`` callback."""
        if package not in PACKAGES:
            raise ValidationError(f"Unknown package '{package}'.")
        name_clean, email_clean = self._validate_identity(name, email)
        method = "QRIS" if (payment or "").strip().upper() == "QRIS" else "TRANSFER"
        amount, _days = PACKAGES[package]

        order_id = self.repo.new_id("REG")
        details = self.registration_initiators[method].initiate(amount, order_id)
        record = PaymentRecord(
            order_id=order_id,
            amount=amount,
            payment_type="qris" if method == "QRIS" else "va",
            status="pending",
            bank=details.bank,
            va_number=details.va_number,
            qris_url=details.qris_url,
        )
        payload = {
            "name": name_clean,
            "email": email_clean,
            "business_name": (business_name or "").strip(),
            "package": package,
        }
        self.repo.create_registration_payment(record, payload)
        log.info("registration_initiated order=%s package=%s method=%s", order_id, package, method)
        return record

    def handle_registration_callback(self, order_id: str, status: str) -> Optional[User]:
        if status not in ("paid", "failed"):
            raise ValidationError(f"Unsupported registration status '{status}'.")
        found = self.repo.get_registration_payment(order_id)
        if not found:
            raise NotFoundError("Order ID not found.")
        record, payload = found
        if record.status != "pending":
            log.info("registration_callback_duplicate order=%s status=%s", order_id, record.status)
            return None

        if status == "failed":
            self.repo.complete_registration(order_id, "failed", None)
            log.info("registration_failed order=%s", order_id)
            return None

        if not payload:
            raise NotFoundError("Registration data expired.")
        _amount, days = PACKAGES[payload["package"]]
        user = User(
            id=self.repo.new_id("USR"),
            name=payload["name"],
            email=payload["email"],
            role=ROLE_OWNER,
            business_name=payload.get("business_name") or None,
            package_type=payload["package"],
            status=STATUS_ACTIVE,
            expired_at=_now_iso(self.clock() + timedelta(days=days)),
        )
        if not self.repo.complete_registration(order_id, "paid", user):
            return None
        log.info("registration_paid order=%s user=%s", order_id, user.id)
        return user

    # ---------- Staff ----------
    def list_staff(self, owner_id: str) -> list[User]:
        branch_ids = [b.id for b in self.repo.list_branches(owner_id)]
        return self.repo.list_cashiers(branch_ids)

    def add_staff(self, actor: User, name: str, email: str, branch_id: str) -> User:
        require_action(actor, "manage_staff")
        branch = self.repo.get_branch(branch_id)
        if not branch:
            raise NotFoundError("Branch not found.")
        if branch.owner_id != actor.id:
            raise UnauthorizedBranchError("Branch belongs to another owner.")
        name_clean, email_clean = self._validate_identity(name, email)
        user = User(
            id=self.repo.new_id("USR"),
            name=name_clean,
            email=email_clean,
            role=ROLE_CASHIER,
            branch_id=branch.id,
            status=STATUS_ACTIVE,
        )
        self.repo.create_user(user)
        log.info("staff_added user=%s branch=%s actor=%s", user.id, branch.id, actor.id)
        return user

    def delete_staff(self, actor: User, user_id: str) -> None:
        require_action(actor, "manage_staff")
        target = self.repo.get_user(user_id)
        if not target or target.role != ROLE_CASHIER:
            raise NotFoundError("Staff member not found.")
        branch = self.repo.get_branch(target.branch_id) if target.branch_id else None
        if branch is None or branch.owner_id != actor.id:
            raise UnauthorizedBranchError("Staff member belongs to another owner.")
        if not self.repo.delete_user(user_id):
            raise NotFoundError("Staff member not found.")
        log.info("staff_deleted user=%s actor=%s", user_id, actor.id)
