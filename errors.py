"""Error taxonomy shared by the HTTP routes and the socket relay."""


class ChatError(Exception):
    kind = 'chat_error'
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__ or self.kind)
        self.message = message or self.__class__.__doc__ or self.kind

    def to_dict(self):
        return {'error': self.kind, 'message': self.message}


class Unauthorized(ChatError):
    """User not logged in or session expired"""
    kind = 'unauthorized'
    status_code = 401


class InvalidCredentials(ChatError):
    """Invalid username or password"""
    kind = 'invalid_credentials'
    status_code = 401


class NotFound(ChatError):
    kind = 'not_found'
    status_code = 404

    def __init__(self, entity, ident=None):
        self.entity = entity
        if ident is None:
            message = f'{entity} not found'
        else:
            message = f'{entity} not found: {ident}'
        super().__init__(message)


class ValidationError(ChatError):
    """Invalid request"""
    kind = 'validation_error'


class UsernameTaken(ValidationError):
    """Username already exists"""
    kind = 'username_taken'
    status_code = 409


class EmailTaken(ValidationError):
    """Email already registered"""
    kind = 'email_taken'
    status_code = 409


class RoomFull(ValidationError):
    """Room has reached its member limit"""
    kind = 'room_full'
    status_code = 409


class PersistenceFailure(ChatError):
    """Failed to process request"""
    kind = 'persistence_failure'
    status_code = 500

    def __init__(self, message=None):
        # Internal detail stays in the server log.
        super().__init__()


class ConstraintViolation(PersistenceFailure):
    kind = 'constraint_violation'
