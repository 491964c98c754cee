"""Failures a redemption can end in. Each one is terminal for the current attempt."""


class RedeemError(Exception):
    """Base class. `message` is safe to show to the customer."""

    status = 500
    message = "Something went wrong."

    def __init__(self, message: str | None = None):
        if message:
            self.message = message
        super().__init__(self.message)


class InvalidCode(RedeemError):
    status = 403
    message = "This order code does not exist."


class NotAuthenticated(RedeemError):
    status = 503
    message = "The mailbox is not connected yet. An admin must open /auth first."


class NoMatch(RedeemError):
    status = 404
    message = "No recent confirmation email with a link was found."


class UpstreamFailure(RedeemError):
    status = 502
    message = "Could not reach the mailbox. Try again in a moment."
