from fastapi import status
from fastapi.responses import JSONResponse

class ApplicationException(Exception):
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_response(self):
        return JSONResponse(
            status_code=self.status_code,
            content={"error": self.message}
        )


class NotFoundException(ApplicationException):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class InvalidStatusTransition(ApplicationException):
    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot move intervention from '{current}' to '{requested}'",
            status.HTTP_409_CONFLICT
        )
        self.current = current
        self.requested = requested


class SessionDateConflict(ApplicationException):
    def __init__(self, session_date):
        super().__init__(
            f"A sleep session is already logged for {session_date}",
            status.HTTP_409_CONFLICT
        )
        self.session_date = session_date


class SleepPipelineError(Exception):
    """Base class for failures inside the background analysis pipeline."""


class PersistenceFailure(SleepPipelineError):
    """Writing a pattern, event or intervention row failed."""


class UpstreamFetchFailure(SleepPipelineError):
    """Reading the session window failed; aborts only the current cycle."""


class MalformedPayload(SleepPipelineError):
    """An inbound event payload could not be parsed."""

    def __init__(self, event_id: str, reason: str):
        super().__init__(f"Malformed payload on event {event_id}: {reason}")
        self.event_id = event_id
