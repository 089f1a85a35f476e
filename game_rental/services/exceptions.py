from __future__ import annotations


class RentalApiError(RuntimeError):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(RentalApiError):
    status_code = 404


class GameNotFoundError(NotFoundError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class RentalNotFoundError(NotFoundError):
    pass


class ConflictError(RentalApiError):
    status_code = 409


class GameNotAvailableError(ConflictError):
    def __init__(self, game):
        super().__init__(f"{game.Title} is not available for rental. Quantity: {game.Quantity}")


class RentalAlreadyClosedError(ConflictError):
    pass


class EmailAlreadyRegisteredError(ConflictError):
    def __init__(self, email: str):
        super().__init__(f"Email already registered: {email}")


class GameInUseError(ConflictError):
    pass


class UserInUseError(ConflictError):
    pass


class PlanLimitExceededError(RentalApiError):
    status_code = 422

    def __init__(self, user):
        plan = getattr(user.Plan, "value", user.Plan)
        super().__init__(f"Active rental limit exceeded for user {user.Name} on plan {plan}")


class AuthenticationError(RentalApiError):
    status_code = 401


class PermissionDeniedError(RentalApiError):
    status_code = 403
