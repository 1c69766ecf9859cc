"""Exception hierarchy for advisory provider errors."""


class AdvisoryError(Exception):
    """Base exception for all advisory provider errors."""


class AdvisoryAPIError(AdvisoryError):
    """Error returned by an advisory provider call.

    Args:
        msg: Human-readable description of the error.
        status_code: HTTP status code, or ``0`` when no response arrived.

    """

    def __init__(self, msg: str, status_code: int) -> None:
        """Initialize advisory API error.

        Args:
            msg: Human-readable description of the error.
            status_code: HTTP status code, or ``0`` when no response arrived.

        """
        super().__init__(f"[{status_code}] {msg}")
        self.msg = msg
        self.status_code = status_code
