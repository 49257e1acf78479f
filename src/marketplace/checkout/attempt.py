"""CheckoutAttempt aggregate — the idempotency record of one checkout.

There is one attempt per idempotency key. A completed attempt points at the
order it produced, so repeating the request returns that order. An attempt in
progress blocks a concurrent duplicate. A failed attempt may be started again.

    in_progress → completed
    in_progress → failed → in_progress
"""

from datetime import UTC, datetime
from enum import Enum

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.checkout.events import CheckoutCompleted, CheckoutFailed, CheckoutStarted
from marketplace.domain import marketplace
from marketplace.errors import CheckoutInProgress, InvalidCheckoutRequest


class AttemptStatus(Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@marketplace.aggregate
class CheckoutAttempt:
    idempotency_key = String(required=True, max_length=255, unique=True)
    user_id = Identifier(required=True)
    status = String(choices=AttemptStatus, default=AttemptStatus.IN_PROGRESS.value)
    order_id = Identifier()
    failure_reason = String(max_length=1000)
    attempts = Integer(default=1)
    started_at = DateTime()
    finished_at = DateTime()

    @classmethod
    def start(cls, idempotency_key, user_id):
        now = datetime.now(UTC)
        attempt = cls(
            idempotency_key=idempotency_key,
            user_id=user_id,
            status=AttemptStatus.IN_PROGRESS.value,
            attempts=1,
            started_at=now,
        )
        attempt._raise_started(now)
        return attempt

    def _raise_started(self, now):
        self.raise_(
            CheckoutStarted(
                attempt_id=str(self.id),
                idempotency_key=self.idempotency_key,
                user_id=str(self.user_id),
                attempt_number=self.attempts,
                started_at=now,
            )
        )

    def restart(self):
        if self.status != AttemptStatus.FAILED.value:
            raise ValidationError({"status": [f"Cannot restart a checkout that is {self.status}"]})

        now = datetime.now(UTC)
        self.status = AttemptStatus.IN_PROGRESS.value
        self.attempts = (self.attempts or 1) + 1
        self.failure_reason = None
        self.order_id = None
        self.started_at = now
        self.finished_at = None
        self._raise_started(now)

    def complete(self, order_id):
        if self.status != AttemptStatus.IN_PROGRESS.value:
            raise ValidationError({"status": [f"Cannot complete a checkout that is {self.status}"]})

        now = datetime.now(UTC)
        self.status = AttemptStatus.COMPLETED.value
        self.order_id = order_id
        self.finished_at = now
        self.raise_(
            CheckoutCompleted(
                attempt_id=str(self.id),
                idempotency_key=self.idempotency_key,
                order_id=str(order_id),
                completed_at=now,
            )
        )

    def fail(self, reason, order_id=None):
        if self.status != AttemptStatus.IN_PROGRESS.value:
            raise ValidationError({"status": [f"Cannot fail a checkout that is {self.status}"]})

        now = datetime.now(UTC)
        self.status = AttemptStatus.FAILED.value
        self.failure_reason = reason
        self.order_id = order_id
        self.finished_at = now
        self.raise_(
            CheckoutFailed(
                attempt_id=str(self.id),
                idempotency_key=self.idempotency_key,
                reason=reason,
                order_id=order_id,
                failed_at=now,
            )
        )


@marketplace.repository(part_of=CheckoutAttempt)
class CheckoutAttemptRepository:
    def find_by_key(self, idempotency_key) -> CheckoutAttempt | None:
        return self._dao.query.filter(idempotency_key=idempotency_key).all().first


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@marketplace.command(part_of="CheckoutAttempt")
class StartCheckoutAttempt:
    idempotency_key = String(required=True, max_length=255)
    user_id = Identifier(required=True)


@marketplace.command(part_of="CheckoutAttempt")
class CompleteCheckoutAttempt:
    idempotency_key = String(required=True, max_length=255)
    order_id = Identifier(required=True)


@marketplace.command(part_of="CheckoutAttempt")
class FailCheckoutAttempt:
    idempotency_key = String(required=True, max_length=255)
    reason = String(required=True, max_length=1000)
    order_id = Identifier()


@marketplace.command_handler(part_of=CheckoutAttempt)
class CheckoutAttemptHandler:
    @handle(StartCheckoutAttempt)
    def start_attempt(self, command):
        """Claim the key. Returns the id of the completed order when the key was already used."""
        repo = current_domain.repository_for(CheckoutAttempt)
        attempt = repo.find_by_key(command.idempotency_key)

        if attempt is None:
            repo.add(CheckoutAttempt.start(command.idempotency_key, command.user_id))
            return None

        if str(attempt.user_id) != str(command.user_id):
            raise InvalidCheckoutRequest("idempotency_key", "Idempotency key was already used")
        if attempt.status == AttemptStatus.COMPLETED.value:
            return str(attempt.order_id)
        if attempt.status == AttemptStatus.IN_PROGRESS.value:
            raise CheckoutInProgress(command.idempotency_key)

        attempt.restart()
        repo.add(attempt)
        return None

    @handle(CompleteCheckoutAttempt)
    def complete_attempt(self, command):
        repo = current_domain.repository_for(CheckoutAttempt)
        attempt = repo.find_by_key(command.idempotency_key)
        attempt.complete(command.order_id)
        repo.add(attempt)

    @handle(FailCheckoutAttempt)
    def fail_attempt(self, command):
        repo = current_domain.repository_for(CheckoutAttempt)
        attempt = repo.find_by_key(command.idempotency_key)
        attempt.fail(command.reason, order_id=command.order_id)
        repo.add(attempt)
