class JobStatusError(Exception):
    """Base class for every failure raised by the job status client and server"""


class TransportFailure(JobStatusError):
    """A network or HTTP-level error on a single exchange"""


class DecodeFailure(JobStatusError):
    """A reply or payload that is not the expected JSON shape"""


class BadRequest(JobStatusError):
    """A malformed request body received by one of our endpoints"""


class RetriesExhausted(JobStatusError):
    """The polling budget was consumed without observing a terminal status"""


class PollExhausted(RetriesExhausted):
    """The final polling attempt itself failed"""


class RegistrationFailure(JobStatusError):
    """The server did not accept our webhook registration"""


class ResolutionTimeout(JobStatusError, TimeoutError):
    """No detection path produced a terminal status before the deadline"""
