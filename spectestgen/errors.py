"""Exceptions raised while generating spectest modules."""


class GenerationError(Exception):
    """A build-time failure that aborts the whole generation step."""


class ScriptParseError(GenerationError):
    """The script parser could not turn a script into directives."""


class TranslationError(GenerationError):
    """A module binary could not be rendered as text."""
