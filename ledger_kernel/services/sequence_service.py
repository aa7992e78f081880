"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for invoice numbering,
    payment ordering and stock movement ordering.  Uses a dedicated counter
    table with row-level locking (``SELECT ... FOR UPDATE``) so that
    concurrent allocations never hand out the same value.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by the
    SQLAlchemy ledger store and by the database invoice number generator.

Invariants enforced:
    - The SQL aggregate-max-plus-one pattern is never used; the locked
      counter row is the sole source of truth for the next value.
    - The increment is only visible after the caller's transaction commits.

Failure modes:
    - IntegrityError on a concurrent first-use race is absorbed with a
      savepoint rollback and a locked re-read.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next strictly increasing
        integer.  Does NOT commit; the caller controls the boundary.

    Usage:
        with session.begin():
            value = SequenceService(session).next_value(SequenceService.PAYMENT)
    """

    INVOICE_NUMBER = "invoice_number"
    PAYMENT = "payment"
    STOCK_MOVEMENT = "stock_movement"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the named counter (creating it on first use), increment it, and
        return the new value.

        Postconditions:
            - Returns an integer > 0, strictly greater than any value
              previously committed for this sequence name.
            - The counter row stays locked until the transaction ends.
        """
        if not sequence_name:
            raise ValueError("sequence_name must be non-empty")

        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use; another session may be creating the same row
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Reset a sequence to a specific value.

        WARNING: Only for tests and data migration.  Resetting the invoice
        sequence below an issued number produces number collisions.
        """
        counter = self._locked_counter(sequence_name)
        if counter is None:
            self._session.add(SequenceCounter(name=sequence_name, current_value=value))
        else:
            counter.current_value = value
        self._session.flush()
