"""Exception hierarchy shared by the engine and the HTTP layer.

Every error carries an HTTP-equivalent ``status_code`` and a machine readable
``reason`` so routes can render it without knowing the concrete type.
"""


class ToppestError(Exception):
    """Base class for all engine errors"""
    status_code = 500
    reason = 'internal_error'
    retryable = False

    def __init__(self, message=None, errors=None, **details):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__
        self.errors = list(errors or [])
        self.details = details

    def to_dict(self):
        payload = {
            'success': False,
            'error': self.message,
            'reason': self.reason,
        }
        if self.errors:
            payload['details'] = self.errors
        if self.retryable:
            payload['retryable'] = True
        payload.update(self.details)
        return payload


# Client errors - rejected before any state is touched

class ClientError(ToppestError):
    """Invalid request"""
    status_code = 400
    reason = 'invalid_request'


class InvalidSubmission(ClientError):
    """Invalid game submission"""
    reason = 'invalid_submission'


class InvalidAmount(ClientError):
    """Amount must be a positive integer"""
    reason = 'invalid_amount'


class IdentityNotFound(ClientError):
    """User not found"""
    status_code = 404
    reason = 'identity_not_found'


class QuestNotFound(ClientError):
    """Quest not found"""
    status_code = 404
    reason = 'quest_not_found'


class QuestNotCompleted(ClientError):
    """Quest not completed"""
    reason = 'quest_not_completed'


class QuestAlreadyClaimed(ClientError):
    """Quest reward already claimed"""
    status_code = 409
    reason = 'already_claimed'


# Policy violations - structured reasons, nothing persisted

class PolicyViolation(ToppestError):
    """Request rejected by policy"""
    status_code = 403
    reason = 'policy_violation'


class RateLimited(PolicyViolation):
    """Rate limit exceeded"""
    status_code = 429
    reason = 'rate_limited'


class NoTicketsRemaining(PolicyViolation):
    """No tickets remaining"""
    reason = 'no_tickets_remaining'


class SessionError(PolicyViolation):
    """Invalid session token"""
    reason = 'session_invalid'


class SessionNotFound(SessionError):
    """Invalid session token"""
    status_code = 404
    reason = 'session_not_found'


class SessionExpired(SessionError):
    """Session token expired"""
    reason = 'session_expired'


class SessionAlreadyUsed(SessionError):
    """Session token already used"""
    status_code = 409
    reason = 'session_already_used'


class SessionMismatch(SessionError):
    """Session does not match wallet or game type"""
    reason = 'session_mismatch'


class SubmissionRejected(PolicyViolation):
    """Game submission failed validation"""
    status_code = 422
    reason = 'validation_failed'


# Transient infrastructure errors - safe to retry

class StoreError(ToppestError):
    """Storage backend error"""
    status_code = 503
    reason = 'store_error'
    retryable = True


class StoreUnavailable(StoreError):
    """Storage backend unavailable"""
    reason = 'store_unavailable'


class WriteConflict(StoreError):
    """Concurrent update conflict"""
    status_code = 409
    reason = 'write_conflict'
