from typing import Literal

NotificationType = Literal[
    "SUBMISSION_RECEIVED",
    "SUBMISSION_ASSIGNED",
    "EDITOR_ASSIGNMENT",
    "ASSOCIATE_EDITOR_ASSIGNMENT",
    "SCREENING_COMPLETED",
    "REVISION_REQUESTED",
    "REVIEW_ASSIGNED",
    "REVIEW_SUBMITTED",
    "REVIEW_DECLINED",
    "REVIEWS_COMPLETE",
    "REVIEW_OVERDUE",
]

# 邮件模板种类 -> templates/ 下的文件名
EMAIL_TEMPLATES: dict[str, str] = {
    "submission_received": "submission_received.html",
    "submission_assigned": "submission_assigned.html",
    "editor_assignment": "editor_assignment.html",
    "review_invitation": "review_invitation.html",
    "external_review_invitation": "external_review_invitation.html",
    "reviews_complete": "reviews_complete.html",
}

EMAIL_SUBJECTS: dict[str, str] = {
    "submission_received": "Submission Received",
    "submission_assigned": "New Submission Assigned",
    "editor_assignment": "New Editorial Assignment",
    "review_invitation": "Invitation to Review",
    "external_review_invitation": "Invitation to Review",
    "reviews_complete": "All Reviews Completed",
}
