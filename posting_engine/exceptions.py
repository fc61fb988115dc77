"""
Typed Exception Hierarchy for the Posting Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the engine can report is a class with a machine-readable
``code`` and structured attributes.  Callers catch by type, log the
attributes, and never parse message strings.

    try:
        journals.post_journal(journal_id, actor_id)
    except InvalidJournalTransitionError as e:
        log.warning("post_rejected", extra={"code": e.code, "status": e.current_status})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PostingEngineError (base)
    |
    +-- ConfigurationError
    |   +-- UnknownAmountSourceError
    |   +-- UnknownTriggeringActionError
    |   +-- InvalidRuleError
    |
    +-- JournalError
    |   +-- JournalNotFoundError
    |   +-- InvalidJournalTransitionError
    |   +-- UnbalancedJournalError
    |   +-- EmptyJournalError
    |   +-- DuplicateJournalError
    |
    +-- SubledgerError
    |   +-- InvalidSubledgerAmountError
    |   +-- JournalNotPostedError
    |   +-- JournalLineMismatchError
    |
    +-- DocumentError
    |   +-- InvalidDocumentTransitionError
    |
    +-- OutcomeError
    |   +-- OutcomeNotFoundError
    |   +-- InvalidOutcomeTransitionError
    |   +-- RetryNotAllowedError
    |
    +-- ImmutabilityViolationError
    +-- PostingBlockedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                         | When Raised
--------------|------------------------------|-------------------------------------
Configuration | UNKNOWN_AMOUNT_SOURCE        | Rule line label not in AmountSource
              | UNKNOWN_TRIGGERING_ACTION    | Rule action not in TriggeringAction
              | INVALID_RULE                 | Rule definition rejected at create
--------------|------------------------------|-------------------------------------
Journal       | JOURNAL_NOT_FOUND            | Journal id doesn't exist
              | INVALID_JOURNAL_TRANSITION   | Post non-Draft / reverse non-Posted
              | UNBALANCED_JOURNAL           | Debits != Credits
              | EMPTY_JOURNAL                | No line survived resolution
              | DUPLICATE_JOURNAL            | Idempotency key already used
--------------|------------------------------|-------------------------------------
Subledger     | INVALID_SUBLEDGER_AMOUNT     | Not exactly one positive amount
              | JOURNAL_NOT_POSTED           | Entry against a non-Posted journal
              | JOURNAL_LINE_MISMATCH        | Entry disagrees with its journal line
--------------|------------------------------|-------------------------------------
Document      | INVALID_DOCUMENT_TRANSITION  | Status change not in the lifecycle
--------------|------------------------------|-------------------------------------
Outcome       | OUTCOME_NOT_FOUND            | No outcome for key
              | INVALID_OUTCOME_TRANSITION   | e.g. posted -> failed
              | RETRY_NOT_ALLOWED            | Outcome not retriable / limit hit
--------------|------------------------------|-------------------------------------
Immutability  | IMMUTABILITY_VIOLATION       | Editing a posted record
Posting       | POSTING_BLOCKED              | block_transition policy tripped

===============================================================================
"""

from decimal import Decimal


class PostingEngineError(Exception):
    """
    Base exception for all posting engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "POSTING_ENGINE_ERROR"


# Configuration-related exceptions


class ConfigurationError(PostingEngineError):
    """Base exception for rule configuration problems."""

    code: str = "CONFIGURATION_ERROR"


class UnknownAmountSourceError(ConfigurationError):
    """Rule line amount source does not name a resolvable quantity."""

    code: str = "UNKNOWN_AMOUNT_SOURCE"

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Unknown amount source: {label!r}")


class UnknownTriggeringActionError(ConfigurationError):
    """Triggering action label is not a known lifecycle event."""

    code: str = "UNKNOWN_TRIGGERING_ACTION"

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Unknown triggering action: {label!r}")


class InvalidRuleError(ConfigurationError):
    """Accounting rule definition was rejected."""

    code: str = "INVALID_RULE"

    def __init__(self, rule_name: str, reason: str):
        self.rule_name = rule_name
        self.reason = reason
        super().__init__(f"Invalid accounting rule {rule_name!r}: {reason}")


# Journal-related exceptions


class JournalError(PostingEngineError):
    """Base exception for journal errors."""

    code: str = "JOURNAL_ERROR"


class JournalNotFoundError(JournalError):
    """Journal with given ID was not found."""

    code: str = "JOURNAL_NOT_FOUND"

    def __init__(self, journal_id: str):
        self.journal_id = journal_id
        super().__init__(f"Journal not found: {journal_id}")


class InvalidJournalTransitionError(JournalError):
    """Journal status change is not Draft -> Posted or Posted -> Reversed."""

    code: str = "INVALID_JOURNAL_TRANSITION"

    def __init__(self, journal_id: str, current_status: str, target_status: str):
        self.journal_id = journal_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Cannot move journal {journal_id} from {current_status} to {target_status}"
        )


class UnbalancedJournalError(JournalError):
    """Journal debits do not equal credits."""

    code: str = "UNBALANCED_JOURNAL"

    def __init__(self, debits: Decimal, credits: Decimal, reference: str | None = None):
        self.debits = debits
        self.credits = credits
        self.reference = reference
        label = f"Unbalanced journal {reference}" if reference else "Unbalanced journal"
        super().__init__(f"{label}: debits={debits}, credits={credits}")


class EmptyJournalError(JournalError):
    """No journal line survived amount resolution."""

    code: str = "EMPTY_JOURNAL"

    def __init__(self, rule_name: str):
        self.rule_name = rule_name
        super().__init__(f"Rule {rule_name!r} produced no journal lines")


class DuplicateJournalError(JournalError):
    """A journal already exists for this idempotency key."""

    code: str = "DUPLICATE_JOURNAL"

    def __init__(self, idempotency_key: str, journal_id: str):
        self.idempotency_key = idempotency_key
        self.journal_id = journal_id
        super().__init__(
            f"Journal {journal_id} already exists for key {idempotency_key}"
        )


# Subledger-related exceptions


class SubledgerError(PostingEngineError):
    """Base exception for subledger errors."""

    code: str = "SUBLEDGER_ERROR"


class InvalidSubledgerAmountError(SubledgerError):
    """Subledger entry must carry exactly one positive amount."""

    code: str = "INVALID_SUBLEDGER_AMOUNT"

    def __init__(self, debit_amount: Decimal | None, credit_amount: Decimal | None):
        self.debit_amount = debit_amount
        self.credit_amount = credit_amount
        super().__init__(
            "Subledger entry needs exactly one positive amount: "
            f"debit={debit_amount}, credit={credit_amount}"
        )


class JournalNotPostedError(SubledgerError):
    """Subledger entries may only reference Posted journals."""

    code: str = "JOURNAL_NOT_POSTED"

    def __init__(self, journal_id: str, status: str):
        self.journal_id = journal_id
        self.status = status
        super().__init__(f"Journal {journal_id} is {status}, not Posted")


class JournalLineMismatchError(SubledgerError):
    """Subledger entry disagrees with the journal line it accompanies."""

    code: str = "JOURNAL_LINE_MISMATCH"

    def __init__(self, journal_id: str, journal_line_id: str, reason: str):
        self.journal_id = journal_id
        self.journal_line_id = journal_line_id
        self.reason = reason
        super().__init__(
            f"Subledger entry does not match line {journal_line_id} "
            f"of journal {journal_id}: {reason}"
        )


# Document-related exceptions


class DocumentError(PostingEngineError):
    """Base exception for document lifecycle errors."""

    code: str = "DOCUMENT_ERROR"


class InvalidDocumentTransitionError(DocumentError):
    """Status change is not part of the document's lifecycle."""

    code: str = "INVALID_DOCUMENT_TRANSITION"

    def __init__(self, document_kind: str, from_status: str | None, to_status: str):
        self.document_kind = document_kind
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{document_kind} cannot move from {from_status or '(new)'} to {to_status}"
        )


# Outcome-related exceptions


class OutcomeError(PostingEngineError):
    """Base exception for posting outcome errors."""

    code: str = "OUTCOME_ERROR"


class OutcomeNotFoundError(OutcomeError):
    """No posting outcome exists for the idempotency key."""

    code: str = "OUTCOME_NOT_FOUND"

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(f"No posting outcome for {idempotency_key}")


class InvalidOutcomeTransitionError(OutcomeError):
    """Outcome status change is not allowed."""

    code: str = "INVALID_OUTCOME_TRANSITION"

    def __init__(self, idempotency_key: str, from_status: str, to_status: str):
        self.idempotency_key = idempotency_key
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid outcome transition for {idempotency_key}: "
            f"{from_status} -> {to_status}"
        )


class RetryNotAllowedError(OutcomeError):
    """Retry is not allowed for this outcome."""

    code: str = "RETRY_NOT_ALLOWED"

    def __init__(self, idempotency_key: str, reason: str):
        self.idempotency_key = idempotency_key
        self.reason = reason
        super().__init__(f"Retry not allowed for {idempotency_key}: {reason}")


# Immutability


class ImmutabilityViolationError(PostingEngineError):
    """Attempted to modify or delete a posted record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class PostingBlockedError(PostingEngineError):
    """
    Financial posting failed and the failure policy blocks the transition.

    Raised only under ``FailurePolicy.BLOCK_TRANSITION``, after the outcome
    has been recorded, so the caller can refuse the document status change.
    """

    code: str = "POSTING_BLOCKED"

    def __init__(self, idempotency_key: str, failed_rules: tuple[str, ...]):
        self.idempotency_key = idempotency_key
        self.failed_rules = failed_rules
        if failed_rules:
            detail = f"failed for rule(s): {', '.join(failed_rules)}"
        else:
            detail = "failed before any rule ran"
        super().__init__(f"Posting for {idempotency_key} {detail}")
