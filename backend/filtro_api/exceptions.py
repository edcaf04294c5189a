class ApiError(Exception):
    """Error rendered as ``{"error": code, **extra}`` with the given status."""

    def __init__(self, status_code: int, error: str, **extra):
        self.status_code = status_code
        self.error = error
        self.extra = extra
        super().__init__(f"{status_code} {error}")

    def to_body(self) -> dict:
        return {"error": self.error, **self.extra}


def invalid_request(**extra) -> ApiError:
    return ApiError(400, "invalid_request", **extra)


def not_found(entity: str) -> ApiError:
    return ApiError(404, f"{entity}_not_found")


def already_exists(entity: str) -> ApiError:
    return ApiError(409, f"{entity}_exists")
