"""Error taxonomy shared by the services and the HTTP layer.

Each error carries the message shown to the user and the HTTP status the API
answers with. Services raise them; ``app.py`` turns them into JSON.
"""


class DigiRakshakError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DigiRakshakError):
    status_code = 400


class NotFoundError(DigiRakshakError):
    status_code = 404


class DuplicateEmailError(DigiRakshakError):
    status_code = 409


class InvalidCredentialError(DigiRakshakError):
    status_code = 401


class NotVerifiedError(DigiRakshakError):
    status_code = 403


class ExpiredError(DigiRakshakError):
    status_code = 410


class ExhaustedError(DigiRakshakError):
    status_code = 429


class RateLimitError(DigiRakshakError):
    status_code = 429


class TransportUnavailable(DigiRakshakError):
    status_code = 503


class PersistenceError(DigiRakshakError):
    status_code = 500


class AnalysisError(DigiRakshakError):
    status_code = 500
