"""Exception hierarchy for the automation engine."""


class BrowserBotError(Exception):
    """Base class for all browser_bot errors."""


class BrowserLaunchError(BrowserBotError):
    """A browser process could not be started."""


class SessionDisconnectedError(BrowserBotError):
    """A pooled browser session reported it is no longer connected."""


class QueueError(BrowserBotError):
    """The job queue rejected an operation (unknown job, lost lock, ...)."""


class ScriptError(BrowserBotError):
    """An action script could not be parsed into actions."""
