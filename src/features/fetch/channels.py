"""Channel kinds and source-mode restrictions."""

from enum import Enum


class ChannelKind(str, Enum):
    """The kind of channel a strategy uses to reach usage data."""

    LOCAL_PROCESS_PROTOCOL = "local_process_protocol"
    INTERACTIVE_TERMINAL = "interactive_terminal"
    REMOTE_API_TOKEN = "remote_api_token"
    REMOTE_API_KEY = "remote_api_key"
    BROWSER_SESSION = "browser_session"

    @property
    def display_name(self) -> str:
        """Get the human-readable name for this kind."""
        return _DISPLAY_NAMES[self]

    @property
    def default_priority(self) -> int:
        """Get the default priority for strategies of this kind."""
        return DEFAULT_PRIORITIES[self]


_DISPLAY_NAMES: dict[ChannelKind, str] = {
    ChannelKind.LOCAL_PROCESS_PROTOCOL: "Local Process",
    ChannelKind.INTERACTIVE_TERMINAL: "Interactive Terminal",
    ChannelKind.REMOTE_API_TOKEN: "OAuth Token",
    ChannelKind.REMOTE_API_KEY: "API Key",
    ChannelKind.BROWSER_SESSION: "Browser Session",
}

# Higher is tried first
DEFAULT_PRIORITIES: dict[ChannelKind, int] = {
    ChannelKind.INTERACTIVE_TERMINAL: 100,
    ChannelKind.LOCAL_PROCESS_PROTOCOL: 100,
    ChannelKind.REMOTE_API_TOKEN: 80,
    ChannelKind.REMOTE_API_KEY: 60,
    ChannelKind.BROWSER_SESSION: 40,
}


class SourceMode(str, Enum):
    """Restriction on which channel kinds a pipeline may use.

    - AUTO: Every channel kind is permitted
    - CLI: Local process and interactive terminal channels
    - OAUTH: Remote API channels authenticated with a token
    - API_KEY: Remote API channels authenticated with an API key
    - WEB: Browser session channels
    """

    AUTO = "auto"
    CLI = "cli"
    OAUTH = "oauth"
    API_KEY = "api_key"
    WEB = "web"

    def allows(self, kind: ChannelKind) -> bool:
        """Check if a channel kind is permitted by this mode.

        Args:
            kind: The channel kind to check.

        Returns:
            True if strategies of this kind may run.
        """
        if self is SourceMode.AUTO:
            return True
        return kind in _ALLOWED_KINDS[self]


_ALLOWED_KINDS: dict[SourceMode, frozenset[ChannelKind]] = {
    SourceMode.CLI: frozenset(
        {ChannelKind.LOCAL_PROCESS_PROTOCOL, ChannelKind.INTERACTIVE_TERMINAL}
    ),
    SourceMode.OAUTH: frozenset({ChannelKind.REMOTE_API_TOKEN}),
    SourceMode.API_KEY: frozenset({ChannelKind.REMOTE_API_KEY}),
    SourceMode.WEB: frozenset({ChannelKind.BROWSER_SESSION}),
}
