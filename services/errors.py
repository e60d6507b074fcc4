"""
Exceptions raised by the reviewer assignment services.

Fatal errors abort a whole request. Per-reviewer problems inside a bulk
operation are never raised; they are reported in the bulk result instead.
"""

from __future__ import annotations


class ReviewerAssignmentError(Exception):
    """Base class for every error raised by this package."""


class ManuscriptNotFoundError(ReviewerAssignmentError):
    def __init__(self, manuscript_id: str):
        super().__init__(f"Manuscript not found: {manuscript_id}")
        self.manuscript_id = manuscript_id


class ReviewerFetchError(ReviewerAssignmentError):
    """The reviewer directory could not be queried."""


class EditorNotFoundError(ReviewerAssignmentError):
    def __init__(self, editor_id: str):
        super().__init__(f"Editor not found: {editor_id}")
        self.editor_id = editor_id


class InvalidInvitationRequestError(ReviewerAssignmentError):
    pass


class NoSuitableReviewersError(ReviewerAssignmentError):
    pass


class InvitationNotFoundError(ReviewerAssignmentError):
    def __init__(self, token: str):
        super().__init__("Invitation not found or invalid token")
        self.token = token


class InvalidTransitionError(ReviewerAssignmentError):
    """An invitation was asked to leave a terminal state."""

    def __init__(self, token: str, current_status: str, target_status: str):
        super().__init__(f"Invitation already {current_status}; cannot move to {target_status}")
        self.token = token
        self.current_status = current_status
        self.target_status = target_status


class InvitationExpiredError(ReviewerAssignmentError):
    def __init__(self, token: str):
        super().__init__("Invitation has expired")
        self.token = token


class DuplicateTokenError(ReviewerAssignmentError):
    pass


class ConflictLookupError(ReviewerAssignmentError):
    """Conflict evidence for a reviewer could not be loaded."""
