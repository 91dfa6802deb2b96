"""
Error taxonomy for the session and speaker-proposal workflows.

Every rejected action carries a ``kind`` so that clients can tell apart
"you already did this" (``already_done``), "you are not allowed to do this"
(``not_allowed``) and "this isn't in the right state yet" (``wrong_state``).
Idempotency rejections are ``informational``: they are reported with
``success: True`` and leave the store untouched.
"""


class WorkflowError(Exception):
    code = 'workflow_error'
    kind = 'invalid'
    status_code = 400
    informational = False
    default_message = 'The action could not be completed.'

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        payload = {
            'success': self.informational,
            'code': self.code,
            'kind': self.kind,
            'message': self.message,
        }
        if not self.informational:
            payload['error'] = self.message
        payload.update(self.details)
        return payload


class InvalidTransition(WorkflowError):
    code = 'invalid_transition'
    kind = 'wrong_state'
    status_code = 409
    default_message = 'This action is not available in the current state.'


class BulkTransitionError(InvalidTransition):
    code = 'bulk_transition_failed'
    default_message = 'No sessions were updated because some of them are not eligible.'

    def __init__(self, failed, message=None):
        self.failed = dict(failed)
        super().__init__(message, failed=self.failed)


class CapacityExceeded(WorkflowError):
    code = 'capacity_exceeded'
    kind = 'wrong_state'
    status_code = 409
    default_message = 'This session has reached its maximum capacity.'


class AlreadyFinalized(WorkflowError):
    code = 'already_finalized'
    kind = 'already_done'
    status_code = 200
    informational = True
    default_message = 'This proposal has already been finalized.'


class AlreadyRegistered(WorkflowError):
    code = 'already_registered'
    kind = 'already_done'
    status_code = 200
    informational = True
    default_message = 'You are already registered for this session.'


class AlreadyUpvoted(WorkflowError):
    code = 'already_upvoted'
    kind = 'already_done'
    status_code = 200
    informational = True
    default_message = 'You have already upvoted this session. Upvotes cannot be removed.'


class NotRegistered(WorkflowError):
    code = 'not_registered'
    kind = 'already_done'
    status_code = 200
    informational = True
    default_message = 'You are not registered for this session.'


class PermissionDenied(WorkflowError):
    code = 'permission_denied'
    kind = 'not_allowed'
    status_code = 403
    default_message = 'You are not allowed to perform this action.'


class NotAuthenticated(PermissionDenied):
    code = 'not_authenticated'
    status_code = 401
    default_message = 'Please log in.'


class ValidationError(WorkflowError):
    code = 'validation_error'
    kind = 'invalid'
    status_code = 400
    default_message = 'The request is missing required information.'

    def __init__(self, message=None, errors=None):
        self.errors = errors or {}
        super().__init__(message, errors=self.errors)


class NotFound(WorkflowError):
    code = 'not_found'
    kind = 'not_found'
    status_code = 404
    default_message = 'The requested item does not exist.'


class PaymentConfirmationRequired(WorkflowError):
    code = 'payment_confirmation_required'
    kind = 'payment'
    status_code = 402
    default_message = 'This session is paid. Confirm the payment to register.'

    def __init__(self, amount, message=None):
        self.amount = amount
        super().__init__(message, amount=amount)


class PaymentFailed(WorkflowError):
    code = 'payment_failed'
    kind = 'payment'
    status_code = 402
    default_message = 'The payment could not be processed.'


class PromotionTargetNotFound:
    """Non-fatal warning attached to a committed final approval."""

    code = 'promotion_target_not_found'

    def __init__(self, proposal_id, student_id=None, email=None):
        self.proposal_id = proposal_id
        self.student_id = student_id
        self.email = email

    @property
    def message(self):
        if not self.student_id and not self.email:
            return 'Final approval done, but no user identifier available to tag speaker.'
        return 'Final approval done, but user profile not found to tag as speaker.'

    def to_dict(self):
        return {
            'code': self.code,
            'message': self.message,
            'proposal_id': self.proposal_id,
            'student_id': self.student_id,
            'email': self.email,
        }
