from __future__ import annotations


class ValidationError(ValueError):
    """Bad input (tick, config). Rejected, never fatal."""


class ConfigError(ValidationError):
    pass


class RemoteCallError(RuntimeError):
    """A venue or feed call failed or timed out. Recoverable."""


class VenueError(RemoteCallError):
    pass


class StartupError(RuntimeError):
    """Venue/feed initialization failed while starting an engine."""


class EngineStateError(RuntimeError):
    pass


class RegistryError(KeyError):
    def __init__(self, bot_id: str, message: str):
        super().__init__(bot_id)
        self.bot_id = bot_id
        self.message = message

    def __str__(self) -> str:
        return f"{self.message}: {self.bot_id}"


class BotAlreadyRunning(RegistryError):
    def __init__(self, bot_id: str):
        super().__init__(bot_id, "Bot already running")


class BotNotFound(RegistryError):
    def __init__(self, bot_id: str):
        super().__init__(bot_id, "Bot not found")
