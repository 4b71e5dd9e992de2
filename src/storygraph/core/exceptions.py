"""Exception hierarchy for storygraph."""


class StoryGraphError(Exception):
    """Base exception for all storygraph errors."""


class FFmpegError(StoryGraphError):
    """FFmpeg/ffprobe command failed."""

    def __init__(self, message: str, cmd: str | None = None, returncode: int | None = None):
        self.cmd = cmd
        self.returncode = returncode
        super().__init__(message)


class APIError(StoryGraphError):
    """Remote API call failed."""

    def __init__(self, message: str, provider: str | None = None, status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class MirrorError(APIError):
    """Copying an asset into the analysis bucket failed."""


class InferenceError(APIError):
    """Category inference call failed."""


class ProbeError(StoryGraphError):
    """Technical metadata could not be extracted."""


class DatabaseError(StoryGraphError):
    """Database operation failed."""


class AssetNotFoundError(StoryGraphError):
    """Asset ID not found in the registry."""


class AlignmentError(StoryGraphError):
    """Audio for alignment could not be decoded."""


class FrameRateMismatchError(StoryGraphError):
    """Assets expected to share one timebase have different native rates."""

    def __init__(self, message: str, mismatches: list | None = None):
        self.mismatches = mismatches or []
        super().__init__(message)


class PhaseBusyError(StoryGraphError):
    """A batch phase is already running."""


class PhaseFieldError(StoryGraphError):
    """A phase handler tried to set fields it does not own."""
