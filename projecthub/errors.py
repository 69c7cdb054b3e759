# projecthub/errors.py
"""
Error kinds raised by the collaboration core.

Every error carries a stable ``code`` plus the ``params`` needed to render a
localized message, so clients can show "try again" and "you may not do this"
differently without parsing text.
"""
from typing import Any, Dict

from projecthub.config import settings

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "not_authenticated": "You need to sign in.",
        "not_authorized": "You do not have permission to {action} this project.",
        "not_found": "The requested {resource} was not found.",
        "member_not_found": "No user was found for the email address {email}.",
        "duplicate_member": "{email} is already a member of this project.",
        "owner_protected": "The project owner cannot be removed or changed.",
        "store_unavailable": "The service is temporarily unavailable ({operation}). Please try again.",
        "invalid_input": "Invalid {field}: {reason}",
    },
    "ja": {
        "not_authenticated": "ログインが必要です",
        "not_authorized": "このプロジェクトを{action}する権限がありません",
        "not_found": "{resource}が見つかりません",
        "member_not_found": "指定されたメールアドレスのユーザーが見つかりません ({email})",
        "duplicate_member": "{email} は既にこのプロジェクトのメンバーです",
        "owner_protected": "プロジェクトのオーナーは削除・変更できません",
        "store_unavailable": "一時的に処理できませんでした（{operation}）。もう一度お試しください",
        "invalid_input": "{field}の値が正しくありません: {reason}",
    },
}


class CollaborationError(Exception):
    code = "collaboration_error"
    status_code = 400
    retryable = False

    def __init__(self, **params: Any):
        self.params = params
        super().__init__(self.localized("en"))

    def localized(self, lang: str | None = None) -> str:
        catalog = MESSAGES.get(lang or settings.DEFAULT_LANGUAGE, MESSAGES["en"])
        template = catalog.get(self.code) or MESSAGES["en"].get(self.code, self.code)
        try:
            return template.format(**self.params)
        except KeyError:
            return template

    def to_dict(self, lang: str | None = None) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.localized(lang),
            "params": {k: str(v) for k, v in self.params.items()},
            "retryable": self.retryable,
        }


class NotAuthenticated(CollaborationError):
    code = "not_authenticated"
    status_code = 401


class NotAuthorized(CollaborationError):
    code = "not_authorized"
    status_code = 403


class NotFound(CollaborationError):
    code = "not_found"
    status_code = 404


class MemberNotFound(CollaborationError):
    code = "member_not_found"
    status_code = 404


class DuplicateMember(CollaborationError):
    code = "duplicate_member"
    status_code = 409


class OwnerProtected(CollaborationError):
    code = "owner_protected"
    status_code = 409


class StoreUnavailable(CollaborationError):
    code = "store_unavailable"
    status_code = 503
    retryable = True


class InvalidInput(CollaborationError):
    code = "invalid_input"
    status_code = 422
