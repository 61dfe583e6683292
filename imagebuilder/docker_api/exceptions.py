"""
Docker API Exceptions
"""


class DockerException(Exception):
    """Base Docker exception"""
    pass


class APIError(DockerException):
    """Docker API error"""

    def __init__(self, message, response=None, status_code=None):
        super().__init__(message)
        self.response = response
        self.status_code = status_code


class ImageNotFound(APIError):
    """Image not found"""
    pass


class BuildError(DockerException):
    """Build context could not be prepared"""
    pass


class StreamError(DockerException):
    """Error message embedded in a streaming response"""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


class InvalidReference(DockerException):
    """Image reference not usable for the requested operation"""
    pass
