from fastapi import HTTPException, status

from domain.errors import LedgerError, LedgerErrorKind

HTTP_STATUS = {
    LedgerErrorKind.ALREADY_PROCESSED: status.HTTP_409_CONFLICT,
    LedgerErrorKind.ALREADY_DELETED: status.HTTP_409_CONFLICT,
    LedgerErrorKind.NOT_DELETED: status.HTTP_409_CONFLICT,
    LedgerErrorKind.INVITATION_EXPIRED: status.HTTP_410_GONE,
    LedgerErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LedgerErrorKind.ALREADY_MEMBER: status.HTTP_409_CONFLICT,
    LedgerErrorKind.INVALID_INPUT: 422,
    LedgerErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
}

def unwrap(outcome):
    """Return an operation's value, or raise the HTTP error matching its business error."""
    if isinstance(outcome, LedgerError):
        raise HTTPException(
            status_code=HTTP_STATUS[outcome.kind],
            detail={"code": outcome.kind.value, "message": outcome.message},
        )
    return outcome
