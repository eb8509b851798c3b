"""
Domain errors for the textbook marketplace.

Every error carries a stable ``code`` so API clients can branch on it, and a
human readable message that the UI shows verbatim.

Two families exist:
- PreconditionFailed: the current state of an item or transaction conflicts
  with the request. Never retried automatically; the client re-fetches.
- CandidateValidationError: the input itself is wrong and can be corrected
  by the caller. Raised before any write happens.

Infrastructure faults (django.db.DatabaseError and friends) are never wrapped
in these classes.
"""


class MarketError(Exception):
    """Base class for all marketplace domain errors."""

    code = 'market_error'
    default_message = 'The request could not be completed.'

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def as_dict(self):
        """Return a serializable representation for API responses."""
        return {'detail': self.message, 'code': self.code}


# ============================================================================
# Precondition violations
# ============================================================================

class PreconditionFailed(MarketError):
    code = 'precondition_failed'


class ItemNotFound(PreconditionFailed):
    code = 'item_not_found'
    default_message = 'Item does not exist.'


class TransactionNotFound(PreconditionFailed):
    code = 'transaction_not_found'
    default_message = 'Transaction does not exist.'


class UserNotFound(PreconditionFailed):
    code = 'user_not_found'
    default_message = 'User does not exist.'


class NotAvailable(PreconditionFailed):
    code = 'not_available'
    default_message = 'This item is not available for purchase.'


class AlreadyLocked(PreconditionFailed):
    code = 'already_locked'
    default_message = 'Another buyer is currently reserving this item.'


class SelfPurchase(PreconditionFailed):
    code = 'self_purchase'
    default_message = 'You cannot purchase your own item.'


class ReservationNotHeld(PreconditionFailed):
    code = 'reservation_not_held'
    default_message = 'You do not hold an active reservation for this item.'


class InvalidState(PreconditionFailed):
    code = 'invalid_state'
    default_message = 'This action is not allowed in the current state.'


class NotAParticipant(PreconditionFailed):
    code = 'not_a_participant'
    default_message = 'You are not a party to this transaction.'


class SellerOnly(NotAParticipant):
    code = 'seller_only'
    default_message = 'Only the seller can perform this action.'


class AlreadyRated(PreconditionFailed):
    code = 'already_rated'
    default_message = 'You have already rated this transaction.'


# ============================================================================
# Validation errors
# ============================================================================

class CandidateValidationError(MarketError):
    code = 'validation_error'


class InsufficientDateSpread(CandidateValidationError):
    code = 'insufficient_date_spread'
    default_message = 'Please offer meetup times on at least 2 different dates.'


class NoLocationSelected(CandidateValidationError):
    code = 'no_location_selected'
    default_message = 'Please select at least one meetup location.'


class CandidateNotOffered(CandidateValidationError):
    code = 'candidate_not_offered'
    default_message = 'The chosen meetup time or location was not offered by the buyer.'


class InvalidCandidate(CandidateValidationError):
    code = 'invalid_candidate'
    default_message = 'Unknown meetup time slot or location.'


class InvalidPaymentMethod(CandidateValidationError):
    code = 'invalid_payment_method'
    default_message = 'Unknown payment method.'


class InvalidScore(CandidateValidationError):
    code = 'invalid_score'
    default_message = 'Score must be an integer from 1 to 5.'
