# pollbuddy/errors.py
"""Domain errors raised by the election services.

Every error carries a stable ``code`` so callers (the bot engine, the
webhook, tests) can branch on the failure kind without parsing messages.

Hierarchy:
- ElectionError
  - ValidationFailed        bad format or range, re-prompt the same step
  - UniquenessConflict      duplicate matric/email/candidacy
    - AlreadyVoted          second ballot for the same voter
  - NoPendingCode / CodeExpired / CodeMismatch
  - VotingWindowError
    - WindowNotSet / WindowNotOpen / WindowClosed
  - NotAuthorized, NotVerified, NotFound, InvalidSelection
  - CampaignActive
  - DeliveryFailed          verification mail could not be sent
  - EncryptFailed           ballot could not be encrypted, nothing stored
  - StoreFailure            database error, transaction rolled back
"""


class ElectionError(Exception):
    code = "ELECTION_ERROR"
    default_message = "Something went wrong. Please try again later."

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationFailed(ElectionError):
    code = "VALIDATION"
    default_message = "Invalid input."


class UniquenessConflict(ElectionError):
    code = "UNIQUENESS_CONFLICT"
    default_message = "This record already exists."


class AlreadyVoted(UniquenessConflict):
    code = "ALREADY_VOTED"
    default_message = "You have already cast your vote."


class NoPendingCode(ElectionError):
    code = "NO_PENDING_CODE"
    default_message = "There is no pending verification code for you."


class CodeExpired(ElectionError):
    code = "EXPIRED_CODE"
    default_message = "Your OTP has expired."


class CodeMismatch(ElectionError):
    code = "CODE_MISMATCH"
    default_message = "Invalid OTP. Please check your email and try again."


class VotingWindowError(ElectionError):
    code = "WINDOW"


class WindowNotSet(VotingWindowError):
    code = "WINDOW_NOT_SET"
    default_message = "Voting period has not been set yet."


class WindowNotOpen(VotingWindowError):
    code = "WINDOW_NOT_OPEN"
    default_message = "Voting has not started yet."


class WindowClosed(VotingWindowError):
    code = "WINDOW_CLOSED"
    default_message = "Voting period has ended."


class NotAuthorized(ElectionError):
    code = "NOT_AUTHORIZED"
    default_message = "You don't have permission to perform this action."


class NotVerified(ElectionError):
    code = "NOT_VERIFIED"
    default_message = "You must be registered and verified first."


class NotFound(ElectionError):
    code = "NOT_FOUND"
    default_message = "Record not found."


class InvalidSelection(ElectionError):
    code = "INVALID_CANDIDATE"
    default_message = "Invalid candidate ID. Please try again."


class CampaignActive(ElectionError):
    code = "CAMPAIGN_ACTIVE"
    default_message = "Another campaign is currently active."


class DeliveryFailed(ElectionError):
    code = "DELIVERY_FAILED"
    default_message = "Failed to send OTP. Please try again."


class EncryptFailed(ElectionError):
    code = "ENCRYPT_FAILED"
    default_message = "Failed to record your vote. Please try again."


class StoreFailure(ElectionError):
    code = "STORE_FAILURE"
    default_message = "An error occurred. Please try again later."
